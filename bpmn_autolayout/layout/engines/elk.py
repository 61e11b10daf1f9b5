"""ELK layout engine via elkjs.

Runs the ELK layered algorithm in a persistent Node.js worker process.
The BPMN layout pipeline builds the ELK JSON graph itself (see
bpmn_autolayout.layout.placement); this engine only ships it to elkjs and
returns the laid-out graph.

Architecture Decision:
    - Persistent Node.js worker (not per-call spawn), shared by all engines
    - Line-delimited JSON over stdin/stdout with request IDs
    - Blocking I/O runs in the default executor, bounded by asyncio.wait_for
"""

import asyncio
import atexit
import glob
import json
import logging
import os
import subprocess
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

from ...config.settings import get_solver_timeout
from .base import LayoutEngine, validate_elk_graph

logger = logging.getLogger(__name__)

# BPMN preset: left-to-right layering with orthogonal routing
BPMN_LAYOUT_OPTIONS = {
    "elk.algorithm": "layered",
    "elk.direction": "RIGHT",
    "elk.edgeRouting": "ORTHOGONAL",
    "elk.hierarchyHandling": "INCLUDE_CHILDREN",
    "elk.layered.nodePlacement.strategy": "NETWORK_SIMPLEX",
    "elk.layered.cycleBreaking.strategy": "DEPTH_FIRST",
    "elk.layered.crossingMinimization.strategy": "LAYER_SWEEP",
    "elk.layered.considerModelOrder.strategy": "NODES_AND_EDGES",
    "elk.separateConnectedComponents": True,
    "elk.spacing.nodeNode": 50,
    "elk.layered.spacing.nodeNodeBetweenLayers": 60,
    "elk.spacing.componentComponent": 50,
}

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent.parent


class ELKWorkerManager:
    """Owns the long-running elkjs worker process.

    Requests are serialized through a lock: the worker answers one line per
    request, in order.
    """

    def __init__(self, node_path: str, worker_script: Path, timeout: int):
        """Initialize worker manager.

        Args:
            node_path: Path to Node.js executable
            worker_script: Path to elk_worker.js
            timeout: Timeout in seconds for layout requests
        """
        self._node_path = node_path
        self._worker_script = worker_script
        self._timeout = timeout
        self._process: Optional[subprocess.Popen] = None
        self._lock = threading.Lock()

    def _spawn(self) -> subprocess.Popen:
        """Start the worker unless it is already alive. Caller holds the lock."""
        if self._process is not None and self._process.poll() is None:
            return self._process

        logger.debug(f"Starting ELK worker {self._worker_script}")
        self._process = subprocess.Popen(
            [self._node_path, str(self._worker_script)],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            bufsize=1,  # Line buffered
            cwd=PROJECT_ROOT,
        )
        if self._process.poll() is not None:
            raise RuntimeError("ELK worker failed to start")
        logger.info(f"ELK worker started (PID: {self._process.pid})")
        return self._process

    def _round_trip(self, line: str) -> str:
        with self._lock:
            process = self._spawn()
            try:
                process.stdin.write(line)
                process.stdin.flush()
            except (BrokenPipeError, OSError) as e:
                logger.warning(f"ELK worker pipe broken: {e}, restarting")
                self._process = None
                process = self._spawn()
                process.stdin.write(line)
                process.stdin.flush()

            response_line = process.stdout.readline()
            if not response_line:
                raise RuntimeError("ELK worker closed unexpectedly")
            return response_line

    async def request(self, graph: Dict[str, Any]) -> Dict[str, Any]:
        """Send a layout request and wait for the laid-out graph.

        Args:
            graph: ELK graph JSON

        Returns:
            ELK layout result

        Raises:
            RuntimeError: If layout fails or times out
        """
        request_id = str(uuid.uuid4())
        line = json.dumps({"id": request_id, "graph": graph}) + "\n"

        loop = asyncio.get_running_loop()
        pending = loop.run_in_executor(None, self._round_trip, line)
        try:
            response_line = await asyncio.wait_for(asyncio.shield(pending), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.error(f"ELK request {request_id} timed out after {self._timeout}s")
            # The executor thread still holds the lock until the worker dies
            pending.add_done_callback(lambda done: _log_abandoned(request_id, done))
            self.shutdown()
            raise RuntimeError(f"ELK layout timed out after {self._timeout}s")

        response = json.loads(response_line)
        if "error" in response:
            raise RuntimeError(f"ELK layout failed: {response['error']}")
        if response.get("id") != request_id:
            logger.warning(f"Response ID mismatch: expected {request_id}, got {response.get('id')}")
        return response.get("result", {})

    def shutdown(self) -> None:
        """Terminate the worker process if running."""
        process, self._process = self._process, None
        if process is None:
            return
        logger.debug("Shutting down ELK worker")
        try:
            process.stdin.close()
            process.terminate()
            process.wait(timeout=5)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Error shutting down ELK worker: {e}")
            process.kill()

    @property
    def is_running(self) -> bool:
        """Check if worker is currently running."""
        return self._process is not None and self._process.poll() is None


def _log_abandoned(request_id: str, done: "asyncio.Future") -> None:
    """Collect the outcome of a request that already timed out."""
    if done.cancelled():
        return
    error = done.exception()
    if error is not None:
        logger.warning(f"Timed-out ELK request {request_id} ended with: {error}")
    else:
        logger.debug(f"Timed-out ELK request {request_id} answered late, response dropped")


# Worker shared across ELKLayoutEngine instances
_worker_manager: Optional[ELKWorkerManager] = None
_worker_lock = threading.Lock()


def _cleanup_worker():
    """Cleanup worker on process exit."""
    if _worker_manager is not None:
        _worker_manager.shutdown()


atexit.register(_cleanup_worker)


class ELKLayoutEngine(LayoutEngine):
    """ELK layout engine via an elkjs Node.js subprocess."""

    def __init__(
        self,
        node_path: Optional[str] = None,
        worker_script: Optional[Path] = None,
        timeout: Optional[int] = None,
    ):
        """Initialize ELK layout engine.

        Args:
            node_path: Path to Node.js executable (auto-detect on first use if None)
            worker_script: Path to elk_worker.js (use bundled if None)
            timeout: Timeout in seconds (BPMN_ELK_TIMEOUT if None)
        """
        self._node_path = node_path
        self._worker_script = worker_script or Path(__file__).parent.parent / "elk_worker.js"
        self._timeout = timeout or get_solver_timeout()

    @property
    def name(self) -> str:
        return "elk"

    @property
    def supports_orthogonal_routing(self) -> bool:
        return True

    @property
    def supports_ports(self) -> bool:
        return True

    @property
    def node_path(self) -> str:
        if self._node_path is None:
            self._node_path = self._find_node()
        return self._node_path

    def _find_node(self) -> str:
        """Find Node.js executable."""
        for path in ["node", "/usr/bin/node", "/usr/local/bin/node"]:
            try:
                result = subprocess.run([path, "--version"], capture_output=True, text=True, timeout=5)
                if result.returncode == 0:
                    return path
            except (subprocess.SubprocessError, FileNotFoundError):
                continue

        nvm_paths = glob.glob(os.path.expanduser("~/.nvm/versions/node/*/bin/node"))
        if nvm_paths:
            return sorted(nvm_paths)[-1]  # Latest version

        raise RuntimeError("Node.js not found. Install Node.js and elkjs to use the ELK engine.")

    def _get_worker(self) -> ELKWorkerManager:
        global _worker_manager
        with _worker_lock:
            if _worker_manager is None:
                _worker_manager = ELKWorkerManager(self.node_path, self._worker_script, self._timeout)
            return _worker_manager

    async def is_available(self) -> bool:
        """Check that Node.js runs and can load elkjs."""
        try:
            check_script = "try { require('elkjs'); console.log('ok'); } catch(e) { console.log('missing'); }"
            result = subprocess.run(
                [self.node_path, "-e", check_script],
                capture_output=True,
                text=True,
                timeout=5,
                cwd=PROJECT_ROOT,
            )
            return result.returncode == 0 and result.stdout.strip() == "ok"
        except (RuntimeError, OSError, subprocess.SubprocessError) as e:
            logger.warning(f"ELK availability check failed: {e}")
            return False

    def prepare(self, graph: Dict[str, Any], options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Merge root options over the BPMN preset and validate node sizes."""
        validate_elk_graph(graph)
        layout_options = {**BPMN_LAYOUT_OPTIONS, **graph.get("layoutOptions", {}), **(options or {})}
        return {**graph, "layoutOptions": layout_options}

    async def layout(
        self,
        graph: Dict[str, Any],
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Compute layout using elkjs.

        Args:
            graph: ELK JSON graph
            options: Root layout options (merged over BPMN_LAYOUT_OPTIONS)

        Returns:
            Laid-out ELK JSON graph
        """
        prepared = self.prepare(graph, options)
        return await self._get_worker().request(prepared)
