# pnap_ccm/core/gc.py
"""
Garbage Collector
Periodic sweep that finishes the deletions staged by the reconciler
"""

import logging
import threading
from typing import Dict, Optional

from ..schemas.provider import PUBLIC_NETWORK_RESOURCE, IpBlock, IpBlockStatus
from .ip_blocks import BlockFilter, IPBlockRegistry
from .network import NetworkAttachmentManager

logger = logging.getLogger(__name__)


class GarbageCollector:
    """
    Sweeps IP blocks carrying the delete tag

    Per block and per sweep:
    - unassigned  -> re-read, then delete the block if still unassigned
    - unassigning -> skip, a detach is in flight
    - anything else -> detach from its network

    No locking: the provider's status field keeps sweeps from acting
    twice, and detach/delete may be issued again.
    """

    def __init__(
        self,
        registry: IPBlockRegistry,
        network: NetworkAttachmentManager,
        network_id: str,
        interval_seconds: float = 60.0
    ):
        self.registry = registry
        self.network = network
        self.network_id = network_id
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start sweeping every interval_seconds on a daemon thread"""
        if self.is_running:
            logger.debug("Garbage collector already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="ip-block-gc", daemon=True)
        self._thread.start()
        logger.info(f"Garbage collector started, interval {self.interval_seconds}s")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the sweep loop and wait for the current sweep to finish"""
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("Garbage collector did not stop within timeout")
        else:
            logger.info("Garbage collector stopped")
            self._thread = None

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            self.sweep()

    def sweep(self) -> Dict[str, int]:
        """
        Run one sweep over all blocks marked for deletion

        A failure on one block is logged and does not stop the sweep.

        Returns:
            Counts of deleted, detached, skipped and failed blocks
        """
        stats = {"deleted": 0, "detached": 0, "skipped": 0, "failed": 0}

        try:
            blocks = self.registry.find(None, BlockFilter.DELETED)
        except Exception as e:
            logger.error(f"GC: failed to list IP blocks marked for deletion: {e}")
            stats["failed"] += 1
            return stats

        for block in blocks:
            try:
                action = self._process(block)
            except Exception as e:
                logger.error(f"GC: failed to process IP block {block.id} ({block.cidr}): {e}")
                stats["failed"] += 1
                continue
            stats[action] += 1

        if blocks:
            logger.info(
                f"GC sweep: {stats['deleted']} deleted, {stats['detached']} detached, "
                f"{stats['skipped']} skipped, {stats['failed']} failed"
            )
        return stats

    def _process(self, block: IpBlock) -> str:
        if block.status == IpBlockStatus.UNASSIGNED.value:
            # listing may be stale; delete only what is still unassigned
            current = self.registry.get(block.id)
            if current is None:
                logger.debug(f"GC: IP block {block.id} is already gone, skipping")
                return "skipped"
            if current.status != IpBlockStatus.UNASSIGNED.value:
                logger.debug(f"GC: IP block {block.id} is now {current.status}, skipping")
                return "skipped"
            self.registry.delete(current)
            return "deleted"

        if block.status == IpBlockStatus.UNASSIGNING.value:
            logger.debug(f"GC: IP block {block.id} is unassigning, skipping")
            return "skipped"

        self.network.detach(block, self._network_of(block))
        return "detached"

    def _network_of(self, block: IpBlock) -> str:
        if block.assigned_resource_type == PUBLIC_NETWORK_RESOURCE and block.assigned_resource_id:
            return block.assigned_resource_id
        return self.network_id
