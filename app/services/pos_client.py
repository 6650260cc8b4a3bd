"""
POS Session Client: login -> lock -> execute function -> unlock -> logout.

The POS API expects every request body to be a JSON *string literal* wrapping
the JSON-encoded envelope, so all bodies go through ``encode_pos_body``.
Session and lock IDs live on a short-lived ``PosSession`` handle owned by a
single caller; nothing is stored on the shared client.
"""
import asyncio
import json
import logging
from typing import Any, Dict, Optional

import httpx

from app.models.pos_schemas import PosResponse
from app.utils.config import settings
from app.utils.exceptions import PosAuthError, PosLockError, PosTransportError

logger = logging.getLogger(__name__)

IMPORT_WINDOW_ACTION = "update__window_data"
EXPORT_WINDOW_ACTION = "get__window_data"


def encode_pos_body(payload: Any) -> str:
    """JSON-encode ``payload`` then re-escape it as one JSON string literal."""
    raw = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    return '"' + raw.replace("\\", "\\\\").replace('"', '\\"') + '"'


class PosClient:
    """Stateless transport for the POS back-office API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_redirects: Optional[int] = None,
    ):
        self.base_url = (base_url or settings.POS_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT
        self.max_redirects = max_redirects if max_redirects is not None else settings.HTTP_MAX_REDIRECTS

    def url(self, function: str) -> str:
        return f"{self.base_url}/{function}"

    async def _post(self, function: str, body: str, content_type: str = "application/json") -> Dict[str, Any]:
        """POST an already encoded body and return the decoded JSON envelope."""
        headers = {"Content-Type": content_type}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                max_redirects=self.max_redirects,
            ) as client:
                response = await client.post(self.url(function), content=body.encode("utf-8"), headers=headers)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"{function} error: HTTP {e.response.status_code}")
            raise PosTransportError(f"{function} failed with HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"{function} error: {e}")
            raise PosTransportError(f"{function} failed: {e}") from e

    async def open(self, username: str, password: str) -> str:
        """Log in and return the POS login (session) ID."""
        body = encode_pos_body({"UserName": username, "Password": password, "ProcessType": 1})
        response = PosResponse.model_validate(await self._post("Login", body))
        if response.data is True and response.warning_msg:
            return str(response.warning_msg[0])
        raise PosAuthError(f"Log in to POS unsuccessful: {response.error_message}")

    async def acquire_lock(self, session_id: str, user_id: str, user_password: str) -> str:
        """Lock the POS process for this session and return the lock (process) ID."""
        body = encode_pos_body({
            "loginID": session_id,
            "userID": user_id,
            "userPWD": user_password,
            "isBatch": "Y",
        })
        response = PosResponse.model_validate(await self._post("LockProcess", body))
        if response.data in (None, "", False):
            raise PosLockError(f"LockProcess refused: {response.error_message}")
        return str(response.data)

    async def submit(
        self,
        session_id: str,
        lock_id: str,
        window_action: str,
        target: str,
        payload: str,
    ) -> PosResponse:
        """Run ``import_data`` with the given window action, target and data string."""
        envelope = {
            "loginID": session_id,
            "procID": lock_id,
            "funcNo": "import_data",
            "funcType": 1,
            "funcTableType": 4,
            "pmtID": -1,
            "stringParms": [
                {"Name": "window__action", "Value": window_action},
                {"Name": "window__action_target", "Value": target},
                {"Name": "data", "Value": payload},
            ],
            "numberParms": None,
            "datetimeParms": None,
        }
        body = encode_pos_body(envelope)
        logger.info(f"Executing {window_action} on {target}")
        logger.debug(body)
        return PosResponse.model_validate(await self._post("ExecuteFunction", body))

    async def release(self, session_id: str, lock_id: str) -> None:
        body = encode_pos_body({"loginID": session_id, "parmData": lock_id})
        await self._post("UnlockProcess", body)

    async def close(self, session_id: str) -> None:
        await self._post("logout", f'"{session_id}"', content_type="application/json;charset=utf-8")

    def new_session(self) -> "PosSession":
        return PosSession(self)


class PosSession:
    """
    One login/lock lifetime, owned by exactly one caller.

    ``aclose()`` releases the lock and logs out on every exit path; both calls
    are best-effort and each is attempted at most once. Also usable as
    ``async with client.new_session() as session:``.
    """

    def __init__(
        self,
        client: PosClient,
        username: Optional[str] = None,
        password: Optional[str] = None,
        user_id: Optional[str] = None,
        user_password: Optional[str] = None,
    ):
        self.client = client
        self.username = username or settings.POS_LOGIN_USERNAME
        self.password = password or settings.POS_LOGIN_PASSWORD
        self.user_id = user_id or settings.POS_USER_ID
        self.user_password = user_password or settings.POS_USER_PASSWORD
        self.session_id: Optional[str] = None
        self.lock_id: Optional[str] = None
        self.released = False
        self.closed = False

    async def open(self) -> str:
        self.session_id = await self.client.open(self.username, self.password)
        return self.session_id

    async def lock(self, retries: Optional[int] = None, delay: Optional[float] = None) -> str:
        """Acquire the process lock, retrying lock refusals with exponential backoff."""
        attempts = max(1, retries if retries is not None else settings.POS_LOCK_RETRIES)
        base_delay = delay if delay is not None else settings.POS_LOCK_RETRY_DELAY
        for attempt in range(attempts):
            try:
                self.lock_id = await self.client.acquire_lock(self.session_id, self.user_id, self.user_password)
                return self.lock_id
            except PosLockError as e:
                if attempt == attempts - 1:
                    logger.error(f"LockProcess failed after {attempts} attempts: {e}")
                    raise
                wait = min(base_delay * (2 ** attempt), 30.0)
                logger.warning(f"LockProcess retry {attempt + 1}/{attempts} after {wait}s: {e}")
                await asyncio.sleep(wait)

    async def submit(self, window_action: str, target: str, payload: str) -> PosResponse:
        return await self.client.submit(self.session_id, self.lock_id, window_action, target, payload)

    async def aclose(self) -> None:
        if self.lock_id is not None and not self.released:
            self.released = True
            try:
                await self.client.release(self.session_id, self.lock_id)
            except PosTransportError as e:
                logger.warning(f"UnlockProcess failed for lock {self.lock_id}: {e}")
        if self.session_id is not None and not self.closed:
            self.closed = True
            try:
                await self.client.close(self.session_id)
            except PosTransportError as e:
                logger.warning(f"Logout failed for session {self.session_id}: {e}")

    async def __aenter__(self) -> "PosSession":
        try:
            await self.open()
            await self.lock()
        except BaseException:
            await self.aclose()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


pos_client = PosClient()
