"""Resumable upload sessions for odpush."""

import itertools
from collections import deque
from concurrent.futures import ThreadPoolExecutor, wait
from contextlib import nullcontext

import requests
from rich.console import Console

from odpush.core.auth import TokenManager
from odpush.core.client import CancelScope, check_cancelled, response_text, wait_or_cancel
from odpush.core.config import (
    CHUNK_TIMEOUT,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    MAX_CHUNK_SIZE,
    MAX_FILE_SIZE,
    MAX_PARALLELISM,
    MIN_CHUNK_SIZE,
    MIN_PARALLELISM,
)
from odpush.core.errors import SessionError, UploadError, ValidationError
from odpush.models.item import ItemMetadata
from odpush.models.upload import ChunkRange, SessionStatus, UploadSession
from odpush.utils.helpers import read_exactly

console = Console(stderr=True)

FINAL_STATUSES = (200, 201)
CONTINUE_STATUS = 202
# Graph answers an out-of-order fragment with 409 or 416.
CONFLICT_STATUSES = (409, 416)


def partition(total_size, chunk_size):
    """Split ``[0, total_size)`` into ascending, contiguous chunk ranges."""
    if total_size <= 0:
        raise ValidationError("File size must be greater than zero")
    if chunk_size <= 0:
        raise ValidationError("Chunk size must be greater than zero")

    return [
        ChunkRange(index=index, start=start, end=min(start + chunk_size, total_size))
        for index, start in enumerate(range(0, total_size, chunk_size))
    ]


def validate_upload(size, remote_path, chunk_size, parallelism, max_retries, retry_delay):
    """Reject bad caller input before any network call is made."""
    if not isinstance(size, int) or size <= 0:
        raise ValidationError(f"File size must be a positive integer, got {size!r}")
    if size > MAX_FILE_SIZE:
        raise ValidationError(
            f"File size {size} exceeds the maximum of {MAX_FILE_SIZE} bytes"
        )
    if not MIN_CHUNK_SIZE <= chunk_size <= MAX_CHUNK_SIZE:
        raise ValidationError(
            f"Chunk size must be between {MIN_CHUNK_SIZE} and {MAX_CHUNK_SIZE} bytes"
        )
    if not MIN_PARALLELISM <= parallelism <= MAX_PARALLELISM:
        raise ValidationError(
            f"Parallelism must be between {MIN_PARALLELISM} and {MAX_PARALLELISM}"
        )
    if not remote_path or not remote_path.rsplit("/", 1)[-1].strip():
        raise ValidationError("Target path must end with a file name")
    if max_retries < 0:
        raise ValidationError("max_retries cannot be negative")
    if retry_delay < 0:
        raise ValidationError("retry_delay cannot be negative")


class ResumableUploader:
    """Drives one createUploadSession upload per call to :meth:`run`.

    ``out_of_order_tolerant`` says whether the provider accepts fragments
    while earlier ones are still in flight. OneDrive does not, so by default
    every upload is sent one chunk at a time whatever parallelism is asked.
    ``limiter`` is any context manager (e.g. a ``threading.BoundedSemaphore``)
    held for the duration of each upload.
    """

    def __init__(
        self,
        client,
        token_manager=None,
        max_retries=DEFAULT_MAX_RETRIES,
        retry_delay=DEFAULT_RETRY_DELAY,
        out_of_order_tolerant=False,
        limiter=None,
    ):
        self.client = client
        self.token_manager = token_manager
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.out_of_order_tolerant = out_of_order_tolerant
        self.limiter = limiter if limiter is not None else nullcontext()

    def effective_parallelism(self, parallelism):
        return parallelism if self.out_of_order_tolerant else 1

    def run(
        self,
        credential,
        stream,
        size,
        remote_path,
        chunk_size,
        parallelism=1,
        cancel=None,
        progress_callback=None,
    ) -> ItemMetadata:
        """Upload ``size`` bytes from ``stream`` to ``remote_path``."""
        validate_upload(
            size, remote_path, chunk_size, parallelism, self.max_retries, self.retry_delay
        )

        with self.limiter:
            check_cancelled(cancel, "Upload cancelled before start")
            if self.token_manager is not None:
                credential = self.token_manager.credential_for(credential.name, cancel=cancel)

            self.client.stats.update(total_files=1, total_size=size)
            session = None
            try:
                session = self.create_session(credential, remote_path, size, chunk_size, cancel)
                session.status = SessionStatus.UPLOADING
                item = self._transfer(
                    session, partition(size, chunk_size), stream, parallelism, cancel, progress_callback
                )
            except Exception:
                if session is not None:
                    session.status = SessionStatus.FAILED
                self.client.stats.update(failed_uploads=1)
                raise

            session.status = SessionStatus.COMPLETE
            self.client.stats.update(successful_uploads=1)
            return item

    def _transfer(self, session, chunks, stream, parallelism, cancel, progress_callback):
        window = self.effective_parallelism(parallelism)
        if window == 1:
            item = self._send_in_order(
                session, self._buffered(chunks, stream), cancel, progress_callback
            )
        else:
            item = self._upload_pipelined(
                session, chunks, stream, window, cancel, progress_callback
            )
        if item is None:
            raise SessionError("Upload ended without item metadata")
        return item

    def create_session(
        self, credential, remote_path, total_size, chunk_size, cancel=None
    ) -> UploadSession:
        """Open a replace-on-conflict upload session for ``remote_path``."""
        url = self.client.item_path_url(credential.drive_id, remote_path, "createUploadSession")
        headers = TokenManager.get_headers(credential)
        headers["Content-Type"] = "application/json"
        body = {"item": {"@microsoft.graph.conflictBehavior": "replace"}}

        try:
            response = self.client.request("POST", url, cancel=cancel, headers=headers, json=body)
        except requests.exceptions.RequestException as e:
            raise SessionError(f"Failed to create upload session for {remote_path}: {e}") from e

        if not 200 <= response.status_code < 300:
            raise SessionError(
                f"Failed to create upload session for {remote_path}",
                status=response.status_code,
                body=response_text(response),
            )

        try:
            payload = response.json()
            session_url = payload["uploadUrl"]
        except (ValueError, KeyError, TypeError) as e:
            raise SessionError(
                f"Upload session response for {remote_path} has no uploadUrl",
                status=response.status_code,
                body=response_text(response),
            ) from e

        return UploadSession(
            session_url=session_url,
            total_size=total_size,
            chunk_size=chunk_size,
            expiration=payload.get("expirationDateTime"),
        )

    def upload_chunk(self, session, chunk, data, cancel=None) -> requests.Response:
        """Send one byte range to the session URL (single attempt)."""
        headers = {
            "Content-Length": str(chunk.length),
            "Content-Range": chunk.content_range(session.total_size),
        }
        return self.client.request(
            "PUT",
            session.session_url,
            cancel=cancel,
            headers=headers,
            data=data,
            timeout=CHUNK_TIMEOUT,
        )

    def _send_with_retry(self, session, chunk, data, cancel, return_conflicts=False):
        """Send a chunk until it is accepted or its retries run out."""
        status, body = None, ""
        attempts = self.max_retries + 1

        for attempt in range(attempts):
            if attempt:
                self.client.stats.update(chunk_retries=1)
                console.print(
                    f"[yellow]Chunk {chunk.index} failed (attempt {attempt}/{attempts}): "
                    f"{status or body}. Retrying...[/yellow]"
                )
                wait_or_cancel(cancel, self.retry_delay * attempt, "Upload cancelled")

            chunk.attempt_count += 1
            try:
                response = self.upload_chunk(session, chunk, data, cancel)
            except requests.exceptions.RequestException as e:
                status, body = None, str(e)
                continue

            if self._accepted(session, chunk, response):
                return response
            if return_conflicts and response.status_code in CONFLICT_STATUSES:
                return response
            status, body = response.status_code, response_text(response)

        raise UploadError(
            f"Chunk {chunk.index} at offset {chunk.start} failed after {attempts} attempts; "
            f"last acknowledged offset {session.last_acknowledged_offset}",
            status=status,
            body=body,
            chunk_index=chunk.index,
            offset=chunk.start,
            last_acknowledged_offset=session.last_acknowledged_offset,
        )

    @staticmethod
    def _accepted(session, chunk, response):
        if chunk.end == session.total_size:
            return response.status_code in FINAL_STATUSES
        return response.status_code == CONTINUE_STATUS

    def _acknowledge(self, session, chunk, response, progress_callback):
        session.acknowledge(chunk)
        self.client.stats.update(chunks_sent=1, uploaded_size=chunk.length)
        if progress_callback:
            progress_callback(chunk.length)

        if chunk.end != session.total_size:
            return None

        session.status = SessionStatus.FINALIZING
        try:
            return ItemMetadata.from_api_response(response.json())
        except (ValueError, TypeError, AttributeError) as e:
            raise SessionError(
                "Final chunk response is not valid item metadata",
                status=response.status_code,
                body=response_text(response),
            ) from e

    def _buffered(self, chunks, stream):
        """Read each chunk's bytes from the stream, strictly in order."""
        for chunk in chunks:
            data = read_exactly(stream, chunk.length)
            if len(data) != chunk.length:
                raise ValidationError(
                    f"Stream ended at offset {chunk.start + len(data)}, "
                    f"expected {chunk.end} bytes"
                )
            yield chunk, data

    def _send_in_order(self, session, buffered, cancel, progress_callback):
        item = None
        for chunk, data in buffered:
            response = self._send_with_retry(session, chunk, data, cancel)
            item = self._acknowledge(session, chunk, response, progress_callback)
        return item

    def _upload_pipelined(self, session, chunks, stream, parallelism, cancel, progress_callback):
        """Keep up to ``parallelism`` chunks in flight, acknowledging in order.

        On a conflict response the window drains and the rejected chunk plus
        everything after it goes out sequentially.
        """
        buffered = self._buffered(chunks, stream)
        scope = CancelScope(cancel)
        window = deque()
        item = None

        with ThreadPoolExecutor(
            max_workers=parallelism, thread_name_prefix="odpush-chunk"
        ) as executor:
            try:
                while True:
                    for chunk, data in itertools.islice(buffered, parallelism - len(window)):
                        future = executor.submit(
                            self._send_with_retry, session, chunk, data, scope, True
                        )
                        window.append((chunk, data, future))
                    if not window:
                        return item

                    chunk, data, future = window.popleft()
                    response = future.result()

                    if response.status_code in CONFLICT_STATUSES:
                        console.print(
                            f"[yellow]Chunk {chunk.index} rejected out of order "
                            f"(HTTP {response.status_code}); continuing sequentially[/yellow]"
                        )
                        scope.set()
                        wait([f for _, _, f in window])
                        backlog = [(chunk, data, None)]
                        backlog.extend(
                            (c, d, self._finished_response(session, c, f)) for c, d, f in window
                        )
                        window.clear()
                        return self._drain_sequentially(
                            session, backlog, buffered, cancel, progress_callback
                        )

                    item = self._acknowledge(session, chunk, response, progress_callback)
            finally:
                scope.set()
                for _, _, future in window:
                    future.cancel()

    def _finished_response(self, session, chunk, future):
        """The response of a drained in-flight chunk if the server accepted it."""
        if future.cancelled() or future.exception() is not None:
            return None
        response = future.result()
        return response if self._accepted(session, chunk, response) else None

    def _drain_sequentially(self, session, backlog, buffered, cancel, progress_callback):
        item = None
        for chunk, data, response in backlog:
            if response is None:
                response = self._send_with_retry(session, chunk, data, cancel)
            item = self._acknowledge(session, chunk, response, progress_callback)
        return self._send_in_order(session, buffered, cancel, progress_callback) or item
