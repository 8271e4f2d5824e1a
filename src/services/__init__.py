"""Service layer for WorkChat.

Provides the tool worker supervisor and invoker, the completion client,
conversation persistence, credential storage, and upload handling.
"""
