"""HTTP client for communicating with the vault server."""

import mimetypes
import time
import uuid
from pathlib import Path
from typing import Optional

import httpx

from common.logging_config import get_logger
from cli.config import Config
from cli.utils import format_file_size, format_file_table

logger = get_logger(__name__)

# Only these are worth retrying; a failed integrity check stays failed.
RETRYABLE_STATUS_CODES = {502, 503, 504}


class VaultClient:
    """HTTP client for the vault API with retry logic and error handling."""

    def __init__(self, config: Config):
        """
        Initialize vault client.

        Args:
            config: Configuration instance
        """
        self.config = config
        self.session = httpx.Client(
            base_url=config.get_base_url(),
            timeout=config.get_timeout()
        )
        self.request_id = None
        logger.info(f"Initialized VaultClient [base_url={config.get_base_url()}]")

    def _request_with_retry(
        self,
        method: str,
        endpoint: str,
        max_retries: Optional[int] = None,
        **kwargs
    ) -> httpx.Response:
        """
        Make HTTP request with retry logic on gateway errors and network failures.

        Args:
            method: HTTP method (GET, POST, DELETE)
            endpoint: API endpoint path
            max_retries: Max retry attempts (uses config default if None)
            **kwargs: Additional arguments to pass to httpx request

        Returns:
            HTTP response object

        Raises:
            ConnectionError: If max retries exceeded or connection fails
        """
        retry_config = self.config.get_retry_config()
        max_retries = max_retries if max_retries is not None else retry_config['max_retries']
        backoff = retry_config['retry_backoff_multiplier']

        last_exception = None

        self.request_id = str(uuid.uuid4())
        kwargs.setdefault('headers', {})['X-Request-ID'] = self.request_id

        logger.debug(f"Making request: {method} {endpoint} [request_id={self.request_id}]")

        for attempt in range(max_retries + 1):
            try:
                response = self.session.request(method, endpoint, **kwargs)

                logger.debug(
                    f"Response received: {method} {endpoint} status={response.status_code} "
                    f"[request_id={self.request_id}]"
                )

                if response.status_code in RETRYABLE_STATUS_CODES and attempt < max_retries:
                    delay = backoff ** attempt
                    logger.warning(
                        f"Server unavailable (attempt {attempt + 1}/{max_retries + 1}): "
                        f"{method} {endpoint} status={response.status_code}, retrying in {delay}s "
                        f"[request_id={self.request_id}]"
                    )
                    time.sleep(delay)
                    continue

                return response

            except (httpx.ConnectError, httpx.TimeoutException) as e:
                last_exception = e
                if attempt < max_retries:
                    delay = backoff ** attempt
                    logger.warning(
                        f"Network error (attempt {attempt + 1}/{max_retries + 1}): "
                        f"{method} {endpoint} error={type(e).__name__}, retrying in {delay}s "
                        f"[request_id={self.request_id}]"
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"Network error (max retries exceeded): {method} {endpoint} error={e} "
                        f"[request_id={self.request_id}]"
                    )

        if isinstance(last_exception, httpx.TimeoutException):
            raise ConnectionError("Request timed out. Server may be overloaded.")
        raise ConnectionError("Cannot connect to vault server. Is it running?")

    def _format_error(self, response: httpx.Response) -> str:
        """
        Map HTTP errors to user-friendly messages.

        Args:
            response: HTTP response object

        Returns:
            User-friendly error message
        """
        try:
            error_data = response.json()
            detail = error_data.get('detail', 'Unknown error')
            code = error_data.get('code', 'UNKNOWN')
        except ValueError:
            detail = response.text if response.text else 'Unknown error'
            code = 'UNKNOWN'

        error_messages = {
            'FILE_NOT_FOUND': 'File not found on server.',
            'BLOB_MISSING': 'File not found on server (encrypted content is missing).',
            'INTEGRITY_CHECK_FAILED': 'Integrity check failed: the stored file was modified or the server key changed.',
            'MALFORMED_CONTAINER': 'Stored file is corrupt.',
            'PAYLOAD_TOO_LARGE': 'File too large for this server.',
            'RATE_LIMITED': 'Too many uploads. Please try again later.',
            'STORAGE_IO_ERROR': 'Server storage error. Please try again later.',
        }

        if code in error_messages:
            return error_messages[code]

        status_messages = {
            400: 'Bad request',
            404: 'Not found',
            413: 'File too large',
            429: 'Too many requests',
            500: 'Server error',
            503: 'Service unavailable',
        }

        message = status_messages.get(response.status_code, detail)
        return f"{message} (Code: {code})" if code != 'UNKNOWN' else message

    def upload(self, file_path: str) -> str:
        """
        Upload a local file.

        Args:
            file_path: Path of the file to upload

        Returns:
            Success message with the new file id, or an error message
        """
        path = Path(file_path)
        if not path.is_file():
            return f"Error: File not found: {file_path}"

        mime_type = mimetypes.guess_type(path.name)[0] or 'application/octet-stream'

        try:
            with open(path, 'rb') as f:
                response = self._request_with_retry(
                    'POST',
                    '/api/upload',
                    max_retries=0,
                    files={'file': (path.name, f, mime_type)},
                )
        except ConnectionError as e:
            return f"Error: {e}"
        except OSError as e:
            return f"Error reading file: {e}"

        if response.status_code in (200, 201):
            data = response.json()
            return (
                f"Uploaded: {data['originalName']} ({format_file_size(data['size'])})\n"
                f"File ID: {data['id']}"
            )
        return f"Error: {self._format_error(response)}"

    def list_files(self) -> str:
        """
        List stored files, newest first.

        Returns:
            Formatted table of files
        """
        try:
            response = self._request_with_retry('GET', '/api/files')
        except ConnectionError as e:
            return f"Error: {e}"

        if response.status_code != 200:
            return f"Error: {self._format_error(response)}"

        files = response.json()
        if not files:
            return "No files stored."
        return f"Found {len(files)} file(s):\n{format_file_table(files)}"

    def download(self, file_id: str, output_path: Optional[str] = None) -> str:
        """
        Download a file by id.

        Args:
            file_id: Id returned by upload
            output_path: Destination file or directory (defaults to the original name in cwd)

        Returns:
            Success message with the saved location, or an error message
        """
        try:
            with self.session.stream(
                'GET',
                f'/api/download/{file_id}',
                headers={'X-Request-ID': str(uuid.uuid4())},
            ) as response:
                if response.status_code != 200:
                    response.read()
                    return f"Error: {self._format_error(response)}"

                filename = _attachment_name(response) or file_id
                output_file = Path(output_path) if output_path else Path(filename)
                if output_file.is_dir():
                    output_file = output_file / filename

                downloaded = 0
                with open(output_file, 'wb') as f:
                    for chunk in response.iter_bytes(chunk_size=8192):
                        f.write(chunk)
                        downloaded += len(chunk)

        except httpx.ConnectError:
            return "Error: Cannot connect to vault server. Is it running?"
        except httpx.TimeoutException:
            return "Error: Request timed out. Server may be overloaded."
        except OSError as e:
            return f"Error writing file: {e}"

        return f"Downloaded: {filename} ({format_file_size(downloaded)})\nSaved to: {output_file.absolute()}"

    def delete(self, file_id: str) -> str:
        """
        Delete a file by id.

        Args:
            file_id: Id returned by upload

        Returns:
            Success or error message
        """
        try:
            response = self._request_with_retry('DELETE', f'/api/files/{file_id}')
        except ConnectionError as e:
            return f"Error: {e}"

        if response.status_code == 200:
            return f"Deleted: {file_id}"
        return f"Error: {self._format_error(response)}"

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()


def _attachment_name(response: httpx.Response) -> Optional[str]:
    """
    Extract a safe local file name from Content-Disposition.

    Only the final path component is kept so a hostile name cannot
    escape the output directory.
    """
    header = response.headers.get('Content-Disposition', '')
    for part in header.split(';'):
        part = part.strip()
        if part.startswith('filename='):
            name = Path(part[len('filename='):].strip('"')).name
            return name if name not in ('', '.', '..') else None
    return None
