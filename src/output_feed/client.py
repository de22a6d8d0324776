"""REST clients for the outputs API."""

import logging

import httpx

from .config import Config
from .errors import DecodeError, NetworkError, SubmissionError, ValidationError
from .models import DIFFICULTIES, FeedFilter, Page, Record

logger = logging.getLogger(__name__)


class _OutputsAPIClient:
    """Shared HTTP plumbing for the outputs API.

    Holds one ``httpx.AsyncClient`` and the current bearer token. The token
    is swapped in place on sign-in without recreating the client.
    """

    def __init__(self, config: Config, token: str | None = None):
        self._config = config
        self.api_url = config.api_base_url.rstrip("/")
        self._token = token if token is not None else config.access_token.get_secret_value()
        self._client = httpx.AsyncClient(
            base_url=self.api_url,
            timeout=config.http_timeout,
            follow_redirects=True,
        )

    def set_token(self, token: str) -> None:
        self._token = token

    def _get_auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()


class RecordStoreClient(_OutputsAPIClient):
    """Fetches pages of the user's outputs, filtered and ordered server-side."""

    async def fetch_page(self, page: int, feed_filter: FeedFilter | None = None) -> Page:
        """Fetch one page of outputs.

        Args:
            page: 1-based page number
            feed_filter: Optional tool-name substring / date filter

        Raises:
            NetworkError: On transport failure or non-success status
            DecodeError: If the body is not ``{data: [...], total_pages: int}``
        """
        url = f"{self.api_url}/api/get-outputs/"
        params: dict[str, str | int] = {"page": page}
        if feed_filter is not None:
            params.update(feed_filter.to_params())
        logger.debug("Fetching outputs with %s", params)

        try:
            response = await self._client.get(url, headers=self._get_auth_headers(), params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise NetworkError(f"HTTP {status}", status_code=status) from e
        except httpx.HTTPError as e:
            raise NetworkError(str(e) or type(e).__name__) from e

        try:
            data = response.json()
        except ValueError as e:
            raise DecodeError("Outputs response is not valid JSON") from e

        result = self._parse_page(data)
        logger.info("Retrieved %d outputs (page %d of %d)", len(result.items), page, result.total_pages)
        return result

    @staticmethod
    def _parse_page(data: object) -> Page:
        if not isinstance(data, dict):
            raise DecodeError(f"Expected an object, got {type(data).__name__}")

        rows = data.get("data") or []
        if not isinstance(rows, list):
            raise DecodeError("Expected 'data' to be a list of outputs")
        items = [Record.from_row(row) for row in rows]

        total_pages = data.get("total_pages") or 1
        if isinstance(total_pages, bool) or not isinstance(total_pages, int):
            try:
                total_pages = int(total_pages)
            except (TypeError, ValueError) as e:
                raise DecodeError(f"Invalid total_pages: {total_pages!r}") from e
        return Page(items=items, total_pages=max(total_pages, 1))


class SubmissionClient(_OutputsAPIClient):
    """Validates and stores new outputs."""

    async def submit(
        self,
        tool_name: str,
        questions: list[str],
        difficulty: str = "easy",
    ) -> Record:
        """Store a new output and return the server's copy.

        Blank questions are dropped and surrounding whitespace is trimmed
        before sending. Validation happens before any request is made.

        Raises:
            ValidationError: If the tool name or questions are missing,
                or the difficulty is unknown
            SubmissionError: On transport failure or non-success status
            DecodeError: If the stored record cannot be read back
        """
        payload = self.build_payload(tool_name, questions, difficulty)
        url = f"{self.api_url}/api/store-output/"

        try:
            response = await self._client.post(url, headers=self._get_auth_headers(), json=payload)
        except httpx.HTTPError as e:
            raise SubmissionError(f"Failed to submit output: {e}") from e

        if response.is_error:
            raise SubmissionError(
                self._error_message(response),
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise DecodeError("Stored output response is not valid JSON") from e

        if isinstance(data, dict) and "data" in data:
            data = data["data"]
        if isinstance(data, list) and len(data) == 1:
            data = data[0]
        record = Record.from_row(data)
        logger.info("Stored output %s (%s)", record.id, record.tool_name)
        return record

    @staticmethod
    def build_payload(tool_name: str, questions: list[str], difficulty: str) -> dict:
        """Validate the form input and build the request body."""
        name = (tool_name or "").strip()
        if not name:
            raise ValidationError("tool name required", field="tool_name")

        cleaned = [q.strip() for q in questions or [] if q and q.strip()]
        if not cleaned:
            raise ValidationError("at least one question required", field="questions")

        if difficulty not in DIFFICULTIES:
            raise ValidationError(
                f"difficulty must be one of {', '.join(DIFFICULTIES)}", field="difficulty"
            )

        return {
            "tool_name": name,
            "output_content": {"questions": cleaned, "difficulty": difficulty},
        }

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Prefer the server's own error text when it sends one."""
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            for key in ("error", "detail", "message"):
                if isinstance(body.get(key), str) and body[key]:
                    return f"Failed to submit output: {body[key]}"
        return f"Failed to submit output (HTTP {response.status_code})"
