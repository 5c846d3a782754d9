# tunedeck/adapters/aiohttp_job_service.py
import asyncio
import json
from typing import Any, AsyncIterator, Dict, List, Optional

import aiohttp
from pydantic import ValidationError

from tunedeck.core.exceptions import TransportError, UploadError
from tunedeck.core.interfaces.job_service import JobServicePort, ProgressCallback
from tunedeck.core.models.job import StatusPayload
from tunedeck.core.models.requests import (
    ModelInfo,
    QueryRequest,
    QueryResponse,
    SubmittedJob,
    UploadedFile,
)
from tunedeck.core.settings import logger

UPLOAD_CHUNK_SIZE = 64 * 1024


class AioHttpJobServiceAdapter(JobServicePort):
    """HTTP client for the remote fine-tuning service.

    Endpoints: POST /upload, POST /finetune, GET /jobs/{id}, POST /query,
    GET /models. HTTP and network errors are translated into TransportError
    (UploadError for uploads) so the core never sees aiohttp exceptions.
    """

    def __init__(
        self,
        base_url: str,
        request_timeout: float = 10.0,
        upload_timeout: float = 300.0,
    ):
        self._base_url = base_url.rstrip("/")
        self._session: Optional[aiohttp.ClientSession] = None
        self._default_timeout = aiohttp.ClientTimeout(total=request_timeout, sock_connect=5.0)
        # uploads stream large files; only the connect phase is tightly bounded
        self._upload_timeout = aiohttp.ClientTimeout(total=upload_timeout, sock_connect=5.0)

    async def __aenter__(self):
        self._session = aiohttp.ClientSession(timeout=self._default_timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """Send a request and return the parsed JSON body.

        Translates HTTP/network errors into TransportError.
        """
        if self._session is None:
            raise RuntimeError("HTTP client not initialized. Use 'async with' context manager.")

        url = self._url(path)
        try:
            async with self._session.request(method, url, **kwargs) as response:
                if response.status >= 400:
                    detail = await self._error_detail(response)
                    logger.error(
                        "HTTP error from job service. URL: %s, Status: %s, Detail: %s",
                        url,
                        response.status,
                        detail,
                    )
                    raise TransportError(
                        f"Job service returned HTTP {response.status}: {detail}",
                        status=response.status,
                        url=url,
                    )
                try:
                    return await response.json()
                except (aiohttp.ContentTypeError, ValueError):
                    # ValueError covers malformed JSON and bodies that are not valid UTF-8
                    text = (await response.read()).decode("utf-8", errors="replace")
                    logger.error(
                        "Invalid JSON response from job service. URL: %s, Content: %s",
                        url,
                        text[:500],
                    )
                    raise TransportError(
                        f"Job service response was not valid JSON: '{text[:100]}'",
                        status=502,
                        url=url,
                    )

        except asyncio.TimeoutError:
            logger.error("Timeout when requesting job service. URL: %s", url)
            raise TransportError("Request to the job service timed out", status=504, url=url)

        except aiohttp.ClientError as client_error:
            logger.error(
                "Connection error when requesting job service. URL: %s, Error: %s",
                url,
                str(client_error),
            )
            raise TransportError(f"Connection error: {client_error}", url=url)

    @staticmethod
    async def _error_detail(response: aiohttp.ClientResponse) -> str:
        # FastAPI-style services answer errors with {"detail": ...}
        text = (await response.read()).decode("utf-8", errors="replace")
        try:
            body = json.loads(text)
        except ValueError:
            return text[:200]
        if isinstance(body, dict) and "detail" in body:
            return str(body["detail"])
        return text[:200]

    async def upload_file(
        self,
        filename: str,
        content: bytes,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadedFile:
        total = len(content)

        async def chunks() -> AsyncIterator[bytes]:
            sent = 0
            for start in range(0, total, UPLOAD_CHUNK_SIZE):
                piece = content[start:start + UPLOAD_CHUNK_SIZE]
                yield piece
                sent += len(piece)
                if on_progress:
                    on_progress(round(sent * 100 / total))

        with aiohttp.MultipartWriter("form-data") as writer:
            part = writer.append(chunks(), {"Content-Type": "application/octet-stream"})
            part.set_content_disposition("form-data", name="file", filename=filename)

        if on_progress:
            on_progress(0)
        try:
            body = await self._request("POST", "/upload", data=writer, timeout=self._upload_timeout)
            uploaded = UploadedFile.model_validate({"filename": filename, **body})
        except TransportError as exc:
            raise UploadError(f"Failed to upload file {filename}: {exc.message}", filename=filename, status=exc.status) from exc
        except (ValidationError, TypeError) as exc:
            raise UploadError(f"Upload response for {filename} had no file_id", filename=filename) from exc
        if on_progress:
            on_progress(100)
        return uploaded

    async def submit_job(self, file_id: str, config: Dict[str, Any]) -> SubmittedJob:
        form = aiohttp.FormData()
        form.add_field("file_id", file_id)
        form.add_field("config", json.dumps(config))
        body = await self._request("POST", "/finetune", data=form)
        return self._validate(SubmittedJob, body, "/finetune")

    async def fetch_status(self, job_id: str) -> StatusPayload:
        body = await self._request("GET", f"/jobs/{job_id}")
        return self._validate(StatusPayload, body, f"/jobs/{job_id}")

    async def query(self, request: QueryRequest) -> QueryResponse:
        body = await self._request("POST", "/query", json=request.to_wire())
        return self._validate(QueryResponse, body, "/query")

    async def list_models(self) -> List[ModelInfo]:
        body = await self._request("GET", "/models")
        if not isinstance(body, list):
            raise TransportError("Model catalog was not a list", status=502, url=self._url("/models"))
        return [self._validate(ModelInfo, item, "/models") for item in body]

    def _validate(self, model, body: Any, path: str):
        try:
            return model.model_validate(body)
        except ValidationError as exc:
            logger.error("Unexpected response shape from job service. URL: %s, Error: %s", self._url(path), exc)
            raise TransportError(
                f"Unexpected response from {path}: {exc.error_count()} validation error(s)",
                status=502,
                url=self._url(path),
            ) from exc

    async def close(self) -> None:
        """Close the session"""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
