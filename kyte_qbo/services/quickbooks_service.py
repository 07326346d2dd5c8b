"""
QuickBooks Online API client
Authenticated, retry-aware calls for estimate creation and customer fetches.

Token acquisition and refresh belong to the OAuth connection flow; this module
only reads the stored (encrypted) access token for a tenant.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional

import httpx
from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.orm import Session

from ..config import (
    QBO_BACKOFF_BASE_SECONDS,
    QBO_BACKOFF_MAX_SECONDS,
    QBO_HTTP_TIMEOUT_SECONDS,
    QBO_MAX_ATTEMPTS,
    QBO_MINOR_VERSION,
    QUICKBOOKS_ENVIRONMENT,
    SECRET_KEY,
)
from ..database import SessionLocal
from ..domain.customers.schemas import CustomerRecord
from ..domain.orders.estimate_builder import EstimatePayload
from ..exceptions import RemoteApiError
from ..models_quickbooks import QuickBooksIntegration
from ..shared.validators import utcnow

logger = logging.getLogger(__name__)

# QuickBooks API URLs
QUICKBOOKS_API_URLS = {
    "production": "https://quickbooks.api.intuit.com",
    "sandbox": "https://sandbox-quickbooks.api.intuit.com",
}
QUICKBOOKS_WEB_URLS = {
    "production": "https://qbo.intuit.com/app/",
    "sandbox": "https://sandbox.qbo.intuit.com/app/",
}

# QuickBooks fault code for "Object Not Found"
OBJECT_NOT_FOUND_CODE = "610"

# Tokens expiring within this window are treated as expired
TOKEN_EXPIRY_MARGIN = timedelta(seconds=60)


def _cipher_suite() -> Fernet:
    return Fernet(SECRET_KEY.encode()[:44].ljust(44, b"="))


def encrypt_token(token: str) -> str:
    """Encrypt a token for storage"""
    return _cipher_suite().encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: str) -> str:
    """Decrypt a stored token"""
    return _cipher_suite().decrypt(encrypted_token.encode()).decode()


@dataclass(frozen=True)
class QuickBooksSession:
    """Authenticated context for one tenant's QuickBooks company"""

    realm_id: str
    access_token: str
    environment: str = QUICKBOOKS_ENVIRONMENT

    @property
    def api_base_url(self) -> str:
        return QUICKBOOKS_API_URLS["production" if self.environment == "production" else "sandbox"]

    @property
    def web_base_url(self) -> str:
        return QUICKBOOKS_WEB_URLS["production" if self.environment == "production" else "sandbox"]


@dataclass(frozen=True)
class EstimateResult:
    estimate_id: str
    estimate_number: Optional[str]
    url: str


SessionProvider = Callable[[str], QuickBooksSession]


def get_integration(db: Session, company_id: str) -> Optional[QuickBooksIntegration]:
    """Get the QuickBooks integration for a tenant"""
    return db.query(QuickBooksIntegration).filter(QuickBooksIntegration.company_id == company_id).first()


def get_integration_by_realm(db: Session, realm_id: str) -> Optional[QuickBooksIntegration]:
    """Get the integration that owns a QuickBooks realm (company)"""
    return db.query(QuickBooksIntegration).filter(QuickBooksIntegration.realm_id == str(realm_id)).first()


def get_quickbooks_session(db: Session, company_id: str) -> QuickBooksSession:
    """
    Build an authenticated session from the tenant's stored integration.

    Raises:
        RemoteApiError: If QuickBooks is not connected or the token cannot be used
    """
    integration = get_integration(db, company_id)
    if not integration:
        raise RemoteApiError("QuickBooks is not connected for this company", remote_status=401)

    if integration.token_expires_at <= utcnow() + TOKEN_EXPIRY_MARGIN:
        logger.warning(f"⚠️ QuickBooks token expired for company {company_id}")
        raise RemoteApiError("QuickBooks access token has expired, reconnect QuickBooks", remote_status=401)

    try:
        access_token = decrypt_token(integration.access_token)
    except InvalidToken as e:
        logger.error(f"❌ Could not decrypt QuickBooks token for company {company_id}")
        raise RemoteApiError("Stored QuickBooks token is unreadable, reconnect QuickBooks", remote_status=401) from e

    return QuickBooksSession(
        realm_id=integration.realm_id,
        access_token=access_token,
        environment=integration.environment or QUICKBOOKS_ENVIRONMENT,
    )


class DatabaseSessionProvider:
    """Resolve tenant sessions from the quickbooks_integrations table"""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def __call__(self, company_id: str) -> QuickBooksSession:
        with self.session_factory() as db:
            return get_quickbooks_session(db, company_id)


def _fault(data: Any) -> Optional[dict]:
    if not isinstance(data, dict):
        return None
    fault = data.get("Fault") or data.get("fault")
    if not isinstance(fault, dict):
        return None
    errors = fault.get("Error") or fault.get("error") or [{}]
    return errors[0] if errors else {}


def _error_message(response: httpx.Response) -> tuple[str, Optional[str]]:
    """Return (message, fault code) for a failed QuickBooks response"""
    try:
        detail = _fault(response.json())
    except ValueError:
        detail = None

    if detail is None:
        text = response.text.strip()[:500] or response.reason_phrase
        return f"QuickBooks API Error (HTTP {response.status_code}): {text}", None

    code = str(detail.get("code") or "Unknown")
    message = detail.get("Message") or detail.get("message") or "Unknown QuickBooks error"
    if detail.get("Detail"):
        message = f"{message} - {detail['Detail']}"
    return f"QuickBooks API Error ({code}): {message}", code


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    try:
        return max(0.0, float(value)) if value else None
    except ValueError:
        return None


class QuickBooksClient:
    """
    Thin QuickBooks Online client.

    Transient failures (timeouts, connection errors, 5xx, 429) are retried
    sequentially with exponential backoff up to ``max_attempts``. Everything
    else raises RemoteApiError on the first failure.
    """

    def __init__(
        self,
        session_provider: SessionProvider,
        http_client: Optional[httpx.AsyncClient] = None,
        max_attempts: int = QBO_MAX_ATTEMPTS,
        backoff_base: float = QBO_BACKOFF_BASE_SECONDS,
        backoff_max: float = QBO_BACKOFF_MAX_SECONDS,
        timeout: float = QBO_HTTP_TIMEOUT_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.session_provider = session_provider
        self.http_client = http_client
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.timeout = timeout
        self.sleep = sleep

    async def create_estimate(self, tenant: str, payload: EstimatePayload) -> EstimateResult:
        """
        Create an estimate in the tenant's QuickBooks company.

        One ``requestid`` is used for every retry of this call, so QuickBooks
        answers a repeated delivery with the estimate it already created.

        Raises:
            RemoteApiError: On any failure, or when the response has no estimate id
        """
        session = self.session_provider(tenant)
        request_id = uuid.uuid4().hex
        data = await self._request(
            session,
            "POST",
            "estimate",
            json=payload.to_quickbooks(),
            params={"requestid": request_id},
        )

        estimate = (data or {}).get("Estimate") or {}
        estimate_id = estimate.get("Id")
        if not estimate_id:
            raise RemoteApiError("Malformed response from QuickBooks: estimate id missing")

        url = f"{session.web_base_url}estimate?txnId={estimate_id}"
        logger.info(f"✅ QuickBooks estimate {estimate_id} created for order {payload.orderNumber}")
        return EstimateResult(estimate_id=str(estimate_id), estimate_number=estimate.get("DocNumber"), url=url)

    async def fetch_customer(self, tenant: str, remote_id: str) -> Optional[CustomerRecord]:
        """
        Fetch one customer by QuickBooks id.

        Returns:
            The customer snapshot, or None when QuickBooks does not know the id
        """
        session = self.session_provider(tenant)
        data = await self._request(session, "GET", f"customer/{remote_id}", not_found_ok=True)
        if data is None:
            logger.info(f"🔍 QuickBooks customer {remote_id} not found for company {tenant}")
            return None

        customer = data.get("Customer")
        if not isinstance(customer, dict) or not customer.get("Id"):
            raise RemoteApiError("Malformed response from QuickBooks: customer missing")
        try:
            return CustomerRecord.from_quickbooks(customer, fetched_at=utcnow())
        except ValueError as e:
            raise RemoteApiError(f"Malformed customer {remote_id} from QuickBooks: {e}") from e

    async def _request(
        self,
        session: QuickBooksSession,
        method: str,
        path: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
        not_found_ok: bool = False,
    ) -> Optional[dict]:
        if self.http_client is not None:
            return await self._request_with_retry(self.http_client, session, method, path, json, params, not_found_ok)
        async with httpx.AsyncClient(timeout=self.timeout) as http_client:
            return await self._request_with_retry(http_client, session, method, path, json, params, not_found_ok)

    async def _request_with_retry(
        self,
        http_client: httpx.AsyncClient,
        session: QuickBooksSession,
        method: str,
        path: str,
        json: Optional[dict],
        params: Optional[dict],
        not_found_ok: bool,
    ) -> Optional[dict]:
        url = f"{session.api_base_url}/v3/company/{session.realm_id}/{path}"
        query = {"minorversion": QBO_MINOR_VERSION, **(params or {})}
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {session.access_token}",
        }

        for attempt in range(1, self.max_attempts + 1):
            retry_after = None
            try:
                response = await http_client.request(method, url, headers=headers, json=json, params=query)
            except httpx.TransportError as e:
                error = RemoteApiError(f"QuickBooks request failed: {e.__class__.__name__}: {e}", transient=True)
            else:
                if response.status_code in (200, 201):
                    return self._parse_success(response)

                message, fault_code = _error_message(response)
                if not_found_ok and (response.status_code == 404 or fault_code == OBJECT_NOT_FOUND_CODE):
                    return None

                transient = response.status_code == 429 or response.status_code >= 500
                error = RemoteApiError(message, remote_status=response.status_code, transient=transient)
                if response.status_code == 429:
                    retry_after = _retry_after(response)

            if not error.transient:
                logger.error(f"❌ QuickBooks {method} {path} failed: {error.message}")
                raise error
            if attempt == self.max_attempts:
                logger.error(f"❌ QuickBooks {method} {path} failed after {attempt} attempts: {error.message}")
                raise error

            delay = retry_after if retry_after is not None else self.backoff_base * (2 ** (attempt - 1))
            delay = min(delay, self.backoff_max)
            logger.warning(f"🔄 Retry {attempt}/{self.max_attempts} for QuickBooks {method} {path} in {delay:.2f}s")
            await self.sleep(delay)

        raise RemoteApiError(f"QuickBooks {method} {path} was not attempted")

    @staticmethod
    def _parse_success(response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError as e:
            raise RemoteApiError("Malformed response from QuickBooks", remote_status=response.status_code) from e

        detail = _fault(data)
        if detail is not None:
            code = detail.get("code") or "Unknown"
            message = detail.get("Message") or "Unknown QuickBooks error"
            raise RemoteApiError(f"QuickBooks API Error ({code}): {message}", remote_status=response.status_code)
        if not isinstance(data, dict):
            raise RemoteApiError("Malformed response from QuickBooks", remote_status=response.status_code)
        return data


def get_quickbooks_client() -> QuickBooksClient:
    """FastAPI dependency: client backed by the stored tenant integrations"""
    return QuickBooksClient(DatabaseSessionProvider())
