"""Tool worker runtime.

Spawned by the tool worker supervisor as ``python -m src.worker``. Concrete
tool integrations register handlers on ``src.worker.registry.registry``
from modules listed in ``WORKCHAT_WORKER_PLUGINS``.
"""
