"""Job bridge: drives one job on a ComfyUI-style queue engine.

The engine is reached two ways: REST endpoints for submission, uploads,
downloads and interrupts, and a WebSocket that streams typed progress events
for everything queued under our client id. A bridge instance owns exactly one
socket and at most one job.

    async with JobBridge(url, output_nodes=["131"]) as bridge:
        await bridge.upload_input(wav, "audio_x.wav", content_type="audio/wav")
        result = await asyncio.wait_for(bridge.run(workflow), timeout=300)

The bridge never times out on its own; callers wrap `run` / `wait_for_result`
in `asyncio.wait_for` and rely on the context manager to close the socket.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

import httpx
import structlog
import websockets
from websockets.exceptions import ConnectionClosedError

from anchor_agent.core.errors import JobBridgeError, JobRejectedError

logger = structlog.get_logger()


class BridgeState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    SUBMITTED = "submitted"
    AWAITING_RESULT = "awaiting_result"
    EXECUTED = "executed"
    ERROR = "error"
    INTERRUPTED = "interrupted"


@dataclass
class JobResult:
    """Terminal outcome of a job."""

    status: Literal["success", "error", "interrupted"]
    job_id: str
    output: dict[str, Any] | None = None
    error: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


def socket_url(server_url: str, client_id: str) -> str:
    """Map an http(s) engine URL to its ws(s) event stream for `client_id`."""
    base = server_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return f"{base}/ws?clientId={client_id}"


def rejected_outputs(node_errors: dict[str, Any], output_nodes: Iterable[str]) -> list[str]:
    """Output nodes named in any node error's `dependent_outputs`."""
    wanted = {str(n) for n in output_nodes}
    hit: list[str] = []
    for error in (node_errors or {}).values():
        for output in error.get("dependent_outputs") or []:
            if str(output) in wanted and str(output) not in hit:
                hit.append(str(output))
    return hit


class JobBridge:
    """One duplex connection, one job, one typed result."""

    def __init__(
        self,
        server_url: str,
        output_nodes: Iterable[str],
        http_client: httpx.AsyncClient | None = None,
        connect: Callable[[str], Any] = websockets.connect,
        client_id: str | None = None,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self.output_nodes = [str(n) for n in output_nodes]
        self.client_id = client_id or str(uuid4())
        self.state = BridgeState.DISCONNECTED
        self.job_id: str | None = None
        self.queue_remaining: int | None = None
        self._connect = connect
        self._socket: Any = None
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=self.server_url, timeout=60.0)

    async def __aenter__(self) -> JobBridge:
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def open(self) -> None:
        """Connect the event stream. Connection errors propagate."""
        if self._socket is not None:
            return
        self.state = BridgeState.CONNECTING
        url = socket_url(self.server_url, self.client_id)
        try:
            self._socket = await self._connect(url)
        except Exception:
            self.state = BridgeState.DISCONNECTED
            raise
        self.state = BridgeState.OPEN
        logger.info("job_bridge.connected", client_id=self.client_id)

    async def submit(self, workflow: dict[str, Any]) -> str:
        """Queue `workflow` and return the engine's job id.

        Raises:
            JobRejectedError: validation errors affect an output node; the job
                has already been interrupted.
            JobBridgeError: a job was already submitted on this bridge, or the
                engine refused the request.
        """
        if self.job_id is not None:
            raise JobBridgeError("bridge already has a job; use a new bridge per job")
        if self._socket is None:
            raise JobBridgeError("bridge is not open")

        response = await self._http.post(
            "/prompt", json={"prompt": workflow, "client_id": self.client_id}
        )
        if response.status_code >= 400:
            raise JobBridgeError(f"job submission failed with status {response.status_code}")
        body = response.json()
        self.job_id = body.get("prompt_id")
        self.state = BridgeState.SUBMITTED

        node_errors = body.get("node_errors") or {}
        for node_id, node_error in node_errors.items():
            logger.warning(
                "job_bridge.node_error",
                node=node_id,
                class_type=node_error.get("class_type"),
                errors=node_error.get("errors"),
                dependent_outputs=node_error.get("dependent_outputs"),
            )

        affected = rejected_outputs(node_errors, self.output_nodes)
        if affected:
            try:
                await self.interrupt()
            except (JobBridgeError, httpx.HTTPError) as e:
                logger.warning("job_bridge.interrupt_failed", job_id=self.job_id, error=str(e))
            self.state = BridgeState.INTERRUPTED
            raise JobRejectedError(
                f"output nodes {affected} affected by validation errors", node_errors
            )

        logger.info("job_bridge.submitted", job_id=self.job_id, client_id=self.client_id)
        return self.job_id

    async def wait_for_result(self) -> JobResult:
        """Consume events until this job reaches a terminal state."""
        if self.job_id is None or self._socket is None:
            raise JobBridgeError("no job in flight")
        self.state = BridgeState.AWAITING_RESULT

        try:
            async for raw in self._socket:
                result = await self._handle(raw)
                if result is not None:
                    return result
        except ConnectionClosedError as e:
            self.state = BridgeState.ERROR
            raise JobBridgeError(f"event stream closed: {e}") from e

        self.state = BridgeState.ERROR
        raise JobBridgeError("event stream closed before the job finished")

    async def run(self, workflow: dict[str, Any]) -> JobResult:
        """Submit and wait in one call."""
        await self.submit(workflow)
        return await self.wait_for_result()

    async def _handle(self, raw: str | bytes) -> JobResult | None:
        # Binary frames are preview images.
        if isinstance(raw, bytes):
            return None
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning("job_bridge.bad_message", size=len(raw))
            return None

        kind = message.get("type")
        data = message.get("data") or {}

        if kind == "status":
            exec_info = (data.get("status") or {}).get("exec_info") or {}
            if "queue_remaining" in exec_info:
                self.queue_remaining = exec_info["queue_remaining"]
            return None

        if data.get("prompt_id") != self.job_id:
            return None

        if kind == "execution_start":
            logger.info("job_bridge.started", job_id=self.job_id)
        elif kind == "execution_error":
            self.state = BridgeState.ERROR
            logger.error(
                "job_bridge.execution_error",
                job_id=self.job_id,
                node=data.get("node_id"),
                error=data.get("exception_message"),
            )
            return JobResult("error", self.job_id, error=data)
        elif kind == "execution_interrupted":
            self.state = BridgeState.INTERRUPTED
            return JobResult("interrupted", self.job_id, error=data)
        elif kind == "executed" and str(data.get("node")) in self.output_nodes:
            self.state = BridgeState.EXECUTED
            logger.info("job_bridge.executed", job_id=self.job_id, node=data.get("node"))
            return JobResult("success", self.job_id, output=data.get("output") or {})
        elif kind == "execution_success":
            output = await self._output_from_history()
            if output is not None:
                self.state = BridgeState.EXECUTED
                return JobResult("success", self.job_id, output=output)
            self.state = BridgeState.ERROR
            return JobResult("error", self.job_id, error={"message": "job finished without output"})
        return None

    async def _output_from_history(self) -> dict[str, Any] | None:
        """Cached runs skip `executed` events; read the output node from history."""
        response = await self._http.get(f"/history/{self.job_id}")
        if response.status_code >= 400:
            return None
        outputs = (response.json().get(self.job_id) or {}).get("outputs") or {}
        for node in self.output_nodes:
            if node in outputs:
                return outputs[node]
        return None

    async def fetch_output(self, filename: str, subfolder: str = "", type: str = "output") -> bytes:
        """Download a produced artifact. Non-2xx and empty bodies raise JobBridgeError."""
        response = await self._http.get(
            "/view", params={"filename": filename, "subfolder": subfolder, "type": type}
        )
        if response.status_code >= 400:
            raise JobBridgeError(
                f"output download failed with status {response.status_code}: {response.text}"
            )
        if not response.content:
            raise JobBridgeError("received empty file from job engine")
        logger.info("job_bridge.output_fetched", filename=filename, size=len(response.content))
        return response.content

    async def upload_input(
        self,
        data: bytes,
        name: str,
        subfolder: str = "",
        content_type: str = "image/png",
    ) -> dict[str, Any]:
        """Push a named input file the workflow will reference."""
        form = {"subfolder": subfolder} if subfolder.strip() else None
        response = await self._http.post(
            "/upload/image",
            files={"image": (name, data, content_type)},
            data=form,
        )
        if response.status_code >= 400:
            raise JobBridgeError(
                f"input upload failed with status {response.status_code}: {response.text}"
            )
        logger.info("job_bridge.input_uploaded", name=name, size=len(data))
        return response.json()

    async def interrupt(self) -> None:
        response = await self._http.post(
            "/api/interrupt", json={"client_id": self.client_id, "prompt_id": self.job_id}
        )
        if response.status_code >= 400:
            raise JobBridgeError(f"interrupt failed with status {response.status_code}")
        logger.warning("job_bridge.interrupted", job_id=self.job_id)

    async def close(self) -> None:
        """Close the socket (and our own HTTP client). Safe to call twice."""
        socket, self._socket = self._socket, None
        if socket is not None:
            await socket.close()
            logger.info("job_bridge.disconnected", client_id=self.client_id)
        if self._owns_http and not self._http.is_closed:
            await self._http.aclose()
        self.state = BridgeState.DISCONNECTED
