from fastapi import Depends, HTTPException, status
import logging

from . import config
from .db import async_session_maker
from .schemas.submission_schema import CommitOrder
from .services.backend_client import BackendClient
from .services.chain_client import DisconnectedWallet, JsonRpcClient, RpcChainClient, RpcWallet
from .services.commit_service import CommitProtocol
from .services.ledger_service import SqlSubmissionLedger
from .services.registry import SessionRegistry
from .services.session_service import QuizSession

logger = logging.getLogger(__name__)


class SessionServices:
    """Everything the session routes need, built once per process."""

    def __init__(self, quiz_source, registry: SessionRegistry, wallet=None, clients=()):
        self.quiz_source = quiz_source
        self.registry = registry
        self.wallet = wallet
        # http clients to close on shutdown
        self.clients = list(clients)

    async def connect_wallet(self) -> bool:
        connect = getattr(self.wallet, "connect", None)
        if connect is None:
            return bool(getattr(self.wallet, "is_connected", False))
        return await connect()

    async def aclose(self) -> None:
        self.registry.close_all()
        for client in self.clients:
            await client.aclose()


def build_services() -> SessionServices:
    backend = BackendClient(config.BACKEND_URL)
    if config.CHAIN_RPC_URL:
        rpc = JsonRpcClient(config.CHAIN_RPC_URL)
        wallet = RpcWallet(rpc)
        clients = [backend, rpc]
        chain = RpcChainClient(rpc, wallet, poll_interval=config.RECEIPT_POLL_SECONDS,
                               receipt_timeout=config.RECEIPT_TIMEOUT_SECONDS)
    else:
        logger.warning("CHAIN_RPC_URL is not set; submissions will fail with not_connected")
        wallet = DisconnectedWallet()
        chain = None
        clients = [backend]
    protocol = CommitProtocol(
        wallet=wallet,
        chain=chain,
        backend=backend,
        contract_address=config.CONTRACT_ADDRESS,
        ledger=SqlSubmissionLedger(async_session_maker),
        order=CommitOrder(config.COMMIT_ORDER),
    )
    registry = SessionRegistry(protocol, tick_interval=config.TICK_SECONDS)
    return SessionServices(quiz_source=backend, registry=registry, wallet=wallet, clients=clients)


_services: SessionServices | None = None


def get_services() -> SessionServices:
    global _services
    if _services is None:
        _services = build_services()
    return _services


def get_quiz_session(session_id: str, services: SessionServices = Depends(get_services)) -> QuizSession:
    session = services.registry.get(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return session
