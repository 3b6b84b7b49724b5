"""
FastAPI Server for Encrypted Water Allocation
==============================================
REST API and WebSocket around the allocation coordinator.

Endpoints:
- GET  /status                          - System status
- POST /requests                        - Submit encrypted demand + priority
- GET  /requests                        - List requests (newest first)
- GET  /requests/{id}                   - Decrypted result (0, 0, false until revealed)
- POST /requests/{id}/decrypt           - Ask the oracle to reveal a request
- POST /requests/{id}/cancel            - Cancel an expired in-flight decryption
- POST /oracle/callback/{handler}       - Oracle resolution entry point
- POST /oracle/fulfill                  - Let the local oracle answer pending jobs
- GET  /zones                           - Zone summaries
- GET  /zones/{zone}/allocation         - Encrypted zone total
- POST /zones/{zone}/decrypt            - Ask the oracle to reveal a zone total
- GET  /zones/{zone}/revealed           - Last revealed zone total
- GET  /security-logs, /history         - Audit trail and lifecycle events
- WS   /ws                              - Real-time lifecycle notifications

Callers identify themselves with the X-Caller-Id header and prove it with
the X-Caller-Token trust token. A farmer's first submission issues the
token; the oracle and zone administrators use configured tokens (or ones
issued and printed at startup).
"""

import base64
import binascii
import json
import time
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, Header, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import AllocationConfig
from ..coordinator.allocation_coordinator import AllocationCoordinator, build_local_system
from ..core.events import AllocationEvent
from ..core.exceptions import (
    AllocationError,
    AlreadyProcessed,
    DecryptionNotExpired,
    DuplicateCallback,
    InvalidProof,
    InvalidRequest,
    NotFound,
    Unauthorized,
    ZoneNotFound,
)
from ..core.fhe_engine import EncryptedValue
from ..core.oracle_gateway import RESOLVE_REQUEST_HANDLER, RESOLVE_ZONE_HANDLER
from ..core.oracle_signing import LocalDecryptionOracle
from ..core.security_logger import SecurityLogger

ERROR_STATUS = {
    NotFound: 404,
    ZoneNotFound: 404,
    AlreadyProcessed: 409,
    DuplicateCallback: 409,
    DecryptionNotExpired: 409,
    InvalidRequest: 400,
    InvalidProof: 400,
    Unauthorized: 403,
}


def status_for(error: AllocationError) -> int:
    for cls in type(error).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 400


class EncryptedPayload(BaseModel):
    """Base64 ciphertext as produced by EncryptedValue.to_dict()"""
    ciphertext: str
    scheme: str
    checksum: str

    def to_value(self) -> EncryptedValue:
        try:
            value = EncryptedValue.from_dict(self.model_dump())
        except (binascii.Error, ValueError):
            raise HTTPException(status_code=400, detail="Ciphertext is not valid base64")
        if not value.verify_integrity():
            raise HTTPException(status_code=400, detail="Checksum mismatch")
        return value


class SubmitRequestBody(BaseModel):
    encrypted_demand: EncryptedPayload
    encrypted_priority: EncryptedPayload
    zone: Optional[str] = None


class OracleCallbackBody(BaseModel):
    callback_id: str
    cleartext: str
    proof: str


class DecryptedRequestResponse(BaseModel):
    request_id: int
    demand: int
    priority: int
    processed: bool
    state: str


class AllocationServer:
    """
    Holds the coordinator, its local oracle and the WebSocket clients.
    """

    def __init__(self,
                 config: Optional[AllocationConfig] = None,
                 clock: Callable[[], float] = time.time):
        self.config = config or AllocationConfig()
        self.clock = clock

        self.coordinator: Optional[AllocationCoordinator] = None
        self.oracle: Optional[LocalDecryptionOracle] = None
        self.logger: Optional[SecurityLogger] = None
        self.is_running = False
        # credentials issued at startup for unconfigured privileged identities
        self.credentials: Dict[str, str] = {}

        self.websocket_clients: List[WebSocket] = []
        self._outbox: List[AllocationEvent] = []

    def initialize(self):
        """Build coordinator and oracle from the current config"""
        print("Initializing encrypted water allocation service...")
        self.logger = SecurityLogger(self.config.audit_log_file)
        self.credentials = {}
        self.coordinator, self.oracle = build_local_system(
            self.config, security_logger=self.logger, clock=self.clock
        )
        self.coordinator.events.subscribe(self._outbox.append)

        credentials = self.coordinator.policy.credentials
        for identity in [self.config.oracle_identity, *self.config.zone_administrators]:
            if not credentials.is_registered(identity):
                self.credentials[identity] = credentials.issue(identity)
                print(f"  Credential for {identity}: {self.credentials[identity]}")

        self.is_running = True
        print(f"  Ready. Backend: {self.coordinator.algebra.scheme}, "
              f"target zone: {self.config.target_zone}, oracle: {self.oracle.identity}")

    def require_running(self) -> AllocationCoordinator:
        if not self.is_running or self.coordinator is None:
            raise HTTPException(status_code=503, detail="System not initialized")
        return self.coordinator

    def get_status(self) -> Dict[str, Any]:
        return {
            'is_running': self.is_running,
            'available': self.coordinator.is_available() if self.coordinator else False,
            'coordinator_stats': self.coordinator.get_stats() if self.coordinator else None,
            'oracle_pending': len(self.oracle.pending()) if self.oracle else 0,
            'oracle_failed': len(self.oracle.failed()) if self.oracle else 0,
            'security_audit': self.logger.generate_audit_report() if self.logger else None
        }

    async def broadcast(self, message: Dict):
        """Broadcast message to all WebSocket clients"""
        if not self.websocket_clients:
            return

        message_json = json.dumps(message)
        disconnected = []

        for client in self.websocket_clients:
            try:
                await client.send_text(message_json)
            except (WebSocketDisconnect, RuntimeError):
                disconnected.append(client)

        for client in disconnected:
            self.websocket_clients.remove(client)

    async def flush_events(self):
        """Push queued lifecycle events to WebSocket clients"""
        pending = list(self._outbox)
        self._outbox.clear()
        for event in pending:
            await self.broadcast({'type': 'event', 'data': event.to_dict()})


def _b64decode(field_name: str, data: str) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail=f"{field_name} is not valid base64")


def create_app(server: AllocationServer) -> FastAPI:
    """Build the FastAPI app around an AllocationServer"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown"""
        server.initialize()
        yield
        server.is_running = False

    app = FastAPI(
        title="Confidential Water Allocation",
        description="Encrypted water requests revealed only through a decryption oracle",
        version="1.0.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AllocationError)
    async def allocation_error_handler(request: Request, exc: AllocationError):
        return JSONResponse(
            status_code=status_for(exc),
            content={'error': type(exc).__name__, 'detail': str(exc)}
        )

    @app.get("/status")
    async def get_status():
        return server.get_status()

    @app.post("/requests")
    async def submit_request(body: SubmitRequestBody,
                             x_caller_id: str = Header(...),
                             x_caller_token: Optional[str] = Header(None)):
        coordinator = server.require_running()
        encrypted_demand = body.encrypted_demand.to_value()
        encrypted_priority = body.encrypted_priority.to_value()

        issued = coordinator.enroll(x_caller_id, x_caller_token)
        request_id = coordinator.submit_request(
            x_caller_id, encrypted_demand, encrypted_priority, body.zone
        )
        await server.flush_events()

        response = {'request_id': request_id}
        if issued:
            response['caller_token'] = issued
        return response

    @app.get("/requests")
    async def list_requests():
        coordinator = server.require_running()
        return [
            {**r.to_dict(), 'state': coordinator.get_request_state(r.id).value}
            for r in coordinator.list_requests()
        ]

    @app.get("/requests/{request_id}", response_model=DecryptedRequestResponse)
    async def get_request(request_id: int):
        coordinator = server.require_running()
        demand, priority, processed = coordinator.get_decrypted_request(request_id)
        return DecryptedRequestResponse(
            request_id=request_id,
            demand=demand,
            priority=priority,
            processed=processed,
            state=coordinator.get_request_state(request_id).value
        )

    @app.post("/requests/{request_id}/decrypt")
    async def request_decryption(request_id: int,
                                 x_caller_id: str = Header(...),
                                 x_caller_token: Optional[str] = Header(None)):
        coordinator = server.require_running()
        coordinator.authenticate(x_caller_id, x_caller_token)
        callback_id = coordinator.request_decryption(x_caller_id, request_id)
        await server.flush_events()
        return {'request_id': request_id, 'callback_id': callback_id}

    @app.post("/requests/{request_id}/cancel")
    async def cancel_decryption(request_id: int,
                                x_caller_id: str = Header(...),
                                x_caller_token: Optional[str] = Header(None)):
        coordinator = server.require_running()
        coordinator.authenticate(x_caller_id, x_caller_token)
        callback_id = coordinator.cancel_decryption(x_caller_id, request_id)
        await server.flush_events()
        return {'request_id': request_id, 'cancelled_callback_id': callback_id}

    @app.post("/oracle/callback/{handler}")
    async def oracle_callback(handler: str,
                              body: OracleCallbackBody,
                              x_caller_id: str = Header(...),
                              x_caller_token: Optional[str] = Header(None)):
        coordinator = server.require_running()
        coordinator.authenticate(x_caller_id, x_caller_token)
        cleartext = _b64decode('cleartext', body.cleartext)
        proof = _b64decode('proof', body.proof)

        if handler == RESOLVE_REQUEST_HANDLER:
            demand, priority, processed = coordinator.resolve_request_decryption(
                x_caller_id, body.callback_id, cleartext, proof
            )
            result = {'demand': demand, 'priority': priority, 'processed': processed}
        elif handler == RESOLVE_ZONE_HANDLER:
            result = coordinator.resolve_zone_decryption(
                x_caller_id, body.callback_id, cleartext, proof
            ).to_dict()
        else:
            raise HTTPException(status_code=404, detail=f"Unknown resolution handler: {handler}")

        await server.flush_events()
        return result

    @app.post("/oracle/fulfill")
    async def fulfill_pending():
        """Answer every queued job from the in-process oracle; rejected answers are reported"""
        server.require_running()
        outcome = server.oracle.fulfill_all()
        await server.flush_events()
        return outcome

    @app.get("/zones")
    async def list_zones():
        return server.require_running().accumulator.summary()

    @app.get("/zones/{zone}/allocation")
    async def get_encrypted_allocation(zone: str):
        return server.require_running().get_encrypted_allocation(zone).to_dict()

    @app.post("/zones/{zone}/decrypt")
    async def request_zone_decryption(zone: str,
                                      x_caller_id: str = Header(...),
                                      x_caller_token: Optional[str] = Header(None)):
        coordinator = server.require_running()
        coordinator.authenticate(x_caller_id, x_caller_token)
        callback_id = coordinator.request_zone_decryption(x_caller_id, zone)
        await server.flush_events()
        return {'zone': zone, 'callback_id': callback_id}

    @app.get("/zones/{zone}/revealed")
    async def get_revealed_allocation(zone: str):
        return server.require_running().get_revealed_allocation(zone).to_dict()

    @app.get("/security-logs")
    async def get_security_logs(limit: int = 50):
        return server.logger.to_display_format(limit) if server.logger else []

    @app.get("/history")
    async def get_history(limit: int = 20):
        return server.require_running().get_history(limit)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """WebSocket for real-time lifecycle notifications"""
        await websocket.accept()
        server.websocket_clients.append(websocket)

        try:
            await websocket.send_json({
                'type': 'connected',
                'data': server.get_status()
            })

            while True:
                try:
                    data = await websocket.receive_text()
                    msg = json.loads(data)

                    if msg.get('type') == 'ping':
                        await websocket.send_json({'type': 'pong'})
                except WebSocketDisconnect:
                    break
        finally:
            if websocket in server.websocket_clients:
                server.websocket_clients.remove(websocket)

    return app


server = AllocationServer()
app = create_app(server)


def run_server(host: str = "0.0.0.0", port: int = 8000):
    """Run the server"""
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server(server.config.host, server.config.port)
