"""
Evidence collectors (best-effort, read-only).

Collectors should:
- never raise for missing evidence (record an EvidenceGap in the caller's gap list and return "not found")
- open logs in shared read mode (another process may still be writing them)
- never write to the registry
"""

from bootsleuth.collectors.boot_log import BootLogReader
from bootsleuth.collectors.disk_health import DiskHealthProbe
from bootsleuth.collectors.partition import PartitionLocator
from bootsleuth.collectors.registry import RegistryBlockerScanner
from bootsleuth.collectors.setup_log import SetupLogReader

__all__ = [
    "BootLogReader",
    "DiskHealthProbe",
    "PartitionLocator",
    "RegistryBlockerScanner",
    "SetupLogReader",
]
