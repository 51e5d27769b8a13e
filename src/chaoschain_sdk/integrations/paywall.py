"""HTTP 402 paywall server on FastAPI."""

import inspect
import logging
import re
import threading
import time
from typing import Any, Callable, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from ..core.amounts import AmountLike, to_decimal
from ..core.context import SDKContext
from ..core.errors import PaymentError
from ..core.models import PaymentReceipt
from ..payments.x402 import X402PaymentManager

logger = logging.getLogger(__name__)

TX_HASH_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")
PAYMENT_HEADERS = ("x-payment-token", "x-payment-tx")


class PaidEndpoint:
    """A registered handler and its price."""

    def __init__(
        self,
        path: str,
        handler: Callable,
        amount: str,
        currency: str,
        description: str,
    ):
        self.path = path
        self.handler = handler
        self.amount = amount
        self.currency = currency
        self.description = description

    def to_dict(self) -> dict[str, str]:
        return {
            "path": self.path,
            "amount": self.amount,
            "currency": self.currency,
            "description": self.description,
        }


class X402Server:
    """Serves registered handlers behind HTTP 402 payment checks.

    Clients pay on-chain and retry with the transaction hash in
    ``X-Payment-Tx`` (or a cached payment id in ``X-Payment-Token``).
    Verified payments are cached in the SDK context.

    Example:
        server = X402Server(payment_manager)

        @server.require_payment(amount="1.0", description="Market analysis")
        def analysis(data):
            return {"trend": "up"}

        server.serve()
    """

    def __init__(
        self,
        payment_manager: X402PaymentManager,
        context: Optional[SDKContext] = None,
        host: str = "0.0.0.0",
        port: int = 8402,
        default_currency: str = "USDC",
    ):
        self.payment_manager = payment_manager
        self.context = context or payment_manager.context
        self.host = host
        self.port = port
        self.default_currency = default_currency
        self.endpoints: dict[str, PaidEndpoint] = {}
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None
        self.app = self._create_app()

    @property
    def payment_cache(self):
        return self.context.payment_cache

    def _create_app(self) -> FastAPI:
        app = FastAPI(title="x402 paywall")

        @app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE"])
        async def paywall(path: str, request: Request):
            return await self._handle(request)

        return app

    def register_endpoint(
        self,
        path: str,
        handler: Callable,
        amount: AmountLike,
        currency: Optional[str] = None,
        description: Optional[str] = None,
    ) -> PaidEndpoint:
        """Protect ``handler`` at ``path`` with a payment of ``amount``."""
        to_decimal(amount)
        if not path.startswith("/"):
            path = f"/{path}"
        endpoint = PaidEndpoint(
            path=path,
            handler=handler,
            amount=str(amount),
            currency=(currency or self.default_currency).upper(),
            description=description or f"Access to {path}",
        )
        self.endpoints[path] = endpoint
        logger.info(f"Registered paid endpoint {path}: {endpoint.amount} {endpoint.currency}")
        return endpoint

    def require_payment(
        self,
        amount: AmountLike,
        description: Optional[str] = None,
        currency: Optional[str] = None,
        path: Optional[str] = None,
    ):
        """Decorator registering a handler; the path defaults to ``/<function name>``."""

        def decorator(handler: Callable) -> Callable:
            self.register_endpoint(
                path or f"/{handler.__name__}", handler, amount, currency, description
            )
            return handler

        return decorator

    async def _handle(self, request: Request) -> JSONResponse:
        endpoint = self.endpoints.get(request.url.path)
        if endpoint is None:
            return JSONResponse({"error": "Endpoint not found"}, status_code=404)

        identifier = next(
            (request.headers[name] for name in PAYMENT_HEADERS if request.headers.get(name)),
            None,
        )
        if identifier is None:
            return self._payment_required(endpoint)

        if not await run_in_threadpool(self._verify_payment, identifier, endpoint):
            return JSONResponse({"error": "Invalid or insufficient payment"}, status_code=402)

        try:
            if request.method in ("POST", "PUT"):
                body = await request.body()
                data = await request.json() if body else {}
            else:
                data = dict(request.query_params)

            if inspect.iscoroutinefunction(endpoint.handler):
                result = await endpoint.handler(data)
            else:
                result = await run_in_threadpool(endpoint.handler, data)
        except Exception as e:
            logger.error(f"Handler for {endpoint.path} failed: {e}")
            return JSONResponse({"error": str(e)}, status_code=500)

        return JSONResponse({"success": True, "data": result})

    def _payment_required(self, endpoint: PaidEndpoint) -> JSONResponse:
        requirements = self.payment_manager.create_payment_requirements(
            endpoint.amount, endpoint.currency, endpoint.description
        )
        headers = dict(requirements.headers)
        headers.update(
            {
                "X-Payment-Amount": endpoint.amount,
                "X-Payment-Currency": endpoint.currency,
                "X-Payment-Address": self.payment_manager.wallet.address,
            }
        )
        return JSONResponse(
            requirements.body, status_code=requirements.status_code, headers=headers
        )

    def _verify_payment(self, identifier: str, endpoint: PaidEndpoint) -> bool:
        if self.payment_cache.covers(identifier, endpoint.amount, endpoint.currency):
            return True
        if identifier in self.payment_cache or not TX_HASH_PATTERN.match(identifier):
            return False

        try:
            verified = self.payment_manager.verify_transaction(identifier)
        except PaymentError as e:
            logger.warning(f"Could not verify payment {identifier}: {e}")
            return False
        if verified:
            self.payment_cache.add(
                identifier, endpoint.amount, endpoint.currency, int(time.time() * 1000)
            )
            logger.info(f"Verified payment {identifier} for {endpoint.path}")
        return verified

    def accept_receipt(self, receipt: PaymentReceipt) -> bool:
        """Cache a signed receipt paying this server, keyed by its payment id.

        The receipt must be signed by the payer and its transaction mined
        successfully.
        """
        if receipt.to_address.lower() != self.payment_manager.wallet.address.lower():
            return False
        if not self.payment_manager.verify_receipt(receipt):
            return False
        try:
            settled = self.payment_manager.verify_transaction(receipt.tx_hash)
        except PaymentError as e:
            logger.warning(f"Could not verify receipt transaction {receipt.tx_hash}: {e}")
            return False
        if not settled:
            logger.warning(
                f"Receipt {receipt.payment_id} references unknown transaction {receipt.tx_hash}"
            )
            return False
        self.payment_cache.add(
            receipt.payment_id, receipt.amount, receipt.currency, int(time.time() * 1000)
        )
        return True

    def get_server_stats(self) -> dict[str, Any]:
        return {
            "running": self._server is not None,
            "host": self.host,
            "port": self.port,
            "endpoints": [endpoint.to_dict() for endpoint in self.endpoints.values()],
            "payments_cached": len(self.payment_cache),
            "default_currency": self.default_currency,
        }

    def clear_payment_cache(self) -> None:
        self.payment_cache.clear()

    def serve(self) -> None:
        """Run the server in the foreground."""
        logger.info(f"x402 paywall listening on {self.host}:{self.port}")
        uvicorn.run(self.app, host=self.host, port=self.port)

    def start(self) -> None:
        """Run the server in a background thread."""
        if self._server is not None:
            return
        config = uvicorn.Config(self.app, host=self.host, port=self.port, log_level="info")
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(target=self._server.run, daemon=True)
        self._thread.start()
        logger.info(f"x402 paywall started on {self.host}:{self.port}")

    def stop(self, timeout: float = 5.0) -> None:
        if self._server is None:
            return
        self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout)
        self._server = None
        self._thread = None
        logger.info("x402 paywall stopped")
