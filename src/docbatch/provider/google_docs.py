"""Google Drive v3 / Docs v1 backend over httpx with service-account auth."""

from __future__ import annotations

import json
import logging
from uuid import uuid4

import httpx
from google.auth import credentials as google_auth_credentials
from google.auth import exceptions as google_auth_exceptions
from google.auth import transport as google_auth_transport
from google.oauth2 import service_account

from docbatch.provider.errors import (
    TRANSPORT_REASON,
    ProviderNotConfiguredError,
    ProviderRequestError,
)

logger = logging.getLogger(__name__)

GOOGLE_SCOPES: tuple[str, ...] = (
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/documents",
)
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"  # noqa: S105
DRIVE_API_URL = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3"
DOCS_API_URL = "https://docs.googleapis.com/v1"
PDF_MIME_TYPE = "application/pdf"


class _AuthResponse(google_auth_transport.Response):
    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    @property
    def status(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._response.headers)

    @property
    def data(self) -> bytes:
        return self._response.content


class _AuthRequest(google_auth_transport.Request):
    """google-auth transport adapter that sends token requests through httpx."""

    def __init__(self, client: httpx.Client) -> None:
        self._client = client

    def __call__(  # noqa: PLR0913
        self,
        url: str,
        method: str = "GET",
        body: bytes | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        **_: object,
    ) -> _AuthResponse:
        try:
            response = self._client.request(
                method,
                url,
                content=body,
                headers=headers,
                timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
            )
        except httpx.HTTPError as error:
            raise google_auth_exceptions.TransportError(str(error)) from error
        return _AuthResponse(response)


class GoogleDocsBackend:
    """Raw Drive/Docs operations; every remote failure becomes `ProviderRequestError`."""

    def __init__(
        self,
        *,
        credentials: google_auth_credentials.Credentials,
        timeout_seconds: float = 60.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._credentials = credentials
        self._client = http_client or httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
        )
        self._auth_request = _AuthRequest(self._client)

    @classmethod
    def from_service_account(
        cls,
        *,
        client_email: str,
        private_key: str,
        timeout_seconds: float = 60.0,
        http_client: httpx.Client | None = None,
    ) -> GoogleDocsBackend:
        """Build a backend authenticated as a service account."""

        try:
            credentials = service_account.Credentials.from_service_account_info(
                {
                    "type": "service_account",
                    "client_email": client_email,
                    "private_key": private_key,
                    "token_uri": GOOGLE_TOKEN_URI,
                },
                scopes=list(GOOGLE_SCOPES),
            )
        except (ValueError, KeyError) as error:
            raise ProviderNotConfiguredError(
                f"Invalid Google service account credentials: {error}",
            ) from error
        return cls(
            credentials=credentials,
            timeout_seconds=timeout_seconds,
            http_client=http_client,
        )

    def close(self) -> None:
        self._client.close()

    def copy(self, template_id: str, name: str, folder_id: str | None = None) -> str:
        body: dict[str, object] = {"name": name}
        if folder_id:
            body["parents"] = [folder_id]
        response = self._request(
            "POST",
            f"{DRIVE_API_URL}/files/{template_id}/copy",
            params={"supportsAllDrives": "true", "fields": "id"},
            json=body,
        )
        return _require_file_id(response, action="copy")

    def substitute(self, document_id: str, replacements: dict[str, str]) -> None:
        if not replacements:
            logger.warning("No replacements to perform for document %s", document_id)
            return
        requests = [
            {
                "replaceAllText": {
                    "containsText": {"text": f"{{{{{placeholder}}}}}", "matchCase": False},
                    "replaceText": value,
                },
            }
            for placeholder, value in replacements.items()
        ]
        self._request(
            "POST",
            f"{DOCS_API_URL}/documents/{document_id}:batchUpdate",
            json={"requests": requests},
        )

    def export(self, document_id: str) -> bytes:
        response = self._request(
            "GET",
            f"{DRIVE_API_URL}/files/{document_id}/export",
            params={"mimeType": PDF_MIME_TYPE},
        )
        return response.content

    def upload(self, content: bytes, name: str, folder_id: str | None = None) -> str:
        metadata: dict[str, object] = {"name": name, "mimeType": PDF_MIME_TYPE}
        if folder_id:
            metadata["parents"] = [folder_id]
        boundary = f"docbatch-{uuid4().hex}"
        body = _multipart_related(boundary=boundary, metadata=metadata, content=content)
        response = self._request(
            "POST",
            f"{DRIVE_UPLOAD_URL}/files",
            params={"uploadType": "multipart", "supportsAllDrives": "true", "fields": "id"},
            content=body,
            headers={"Content-Type": f"multipart/related; boundary={boundary}"},
        )
        return _require_file_id(response, action="upload")

    def delete(self, file_id: str) -> None:
        self._request(
            "DELETE",
            f"{DRIVE_API_URL}/files/{file_id}",
            params={"supportsAllDrives": "true"},
        )

    def _request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        **kwargs: object,
    ) -> httpx.Response:
        request_headers = {"Authorization": f"Bearer {self._access_token()}"}
        if headers:
            request_headers.update(headers)
        try:
            response = self._client.request(
                method,
                url,
                headers=request_headers,
                **kwargs,  # type: ignore[arg-type]
            )
        except httpx.HTTPError as error:
            raise ProviderRequestError(
                f"Google API transport error: {error}",
                reason=TRANSPORT_REASON,
            ) from error
        if response.is_success:
            return response
        raise _error_from_response(response)

    def _access_token(self) -> str:
        if not self._credentials.valid:
            try:
                self._credentials.refresh(self._auth_request)
            except google_auth_exceptions.TransportError as error:
                raise ProviderRequestError(
                    f"Google token refresh transport error: {error}",
                    reason=TRANSPORT_REASON,
                ) from error
            except google_auth_exceptions.RefreshError as error:
                raise ProviderRequestError(f"Google token refresh failed: {error}") from error
        return str(self._credentials.token)


def _multipart_related(*, boundary: str, metadata: dict[str, object], content: bytes) -> bytes:
    return b"".join(
        [
            f"--{boundary}\r\n".encode(),
            b"Content-Type: application/json; charset=UTF-8\r\n\r\n",
            json.dumps(metadata, ensure_ascii=False).encode("utf-8"),
            f"\r\n--{boundary}\r\n".encode(),
            f"Content-Type: {PDF_MIME_TYPE}\r\n\r\n".encode(),
            content,
            f"\r\n--{boundary}--\r\n".encode(),
        ],
    )


def _require_file_id(response: httpx.Response, *, action: str) -> str:
    file_id = response.json().get("id")
    if not file_id:
        raise ProviderRequestError(f"Google Drive {action} response did not include a file id")
    return str(file_id)


def _error_from_response(response: httpx.Response) -> ProviderRequestError:
    message = f"HTTP {response.status_code}"
    reason: str | None = None
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        error = payload["error"]
        message = str(error.get("message") or message)
        details = error.get("errors")
        if isinstance(details, list) and details and isinstance(details[0], dict):
            reason = details[0].get("reason")
        if reason is None and isinstance(error.get("status"), str):
            reason = error["status"]
    return ProviderRequestError(
        f"Google API error {response.status_code}: {message}",
        status_code=response.status_code,
        reason=reason,
    )
