# uploader.py
from __future__ import annotations

import re
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence
from urllib.parse import urlencode

from . import __version__
from .errors import UploadError
from .settings import DEFAULT_CODECOV_URL, Secret

_TOKEN_RE = re.compile(r"(token=)[^&\s]+")


def redact(text: str) -> str:
    """Mask upload tokens in URLs before they are printed."""
    return _TOKEN_RE.sub(r"\1***", text)


@dataclass
class UploadResult:
    report_url: str
    files: list[str]


def build_payload(files: Sequence[str | Path], *, root: str | Path = ".") -> bytes:
    """
    Body of a v4 upload: every report file prefixed with its path marker and
    terminated by an EOF marker.
    """
    root_p = Path(root)
    chunks = []
    for f in files:
        p = Path(f)
        if not p.is_absolute():
            p = root_p / p
        if not p.is_file():
            raise UploadError(f"report file not found: {f}")
        chunks.append(f"# path={Path(f).as_posix()}\n")
        chunks.append(p.read_text(encoding="utf-8"))
        chunks.append("\n<<<<<< EOF\n")
    return "".join(chunks).encode("utf-8")


class CodecovClient:
    """HTTP client for the Codecov v4 upload endpoint."""

    def __init__(
        self,
        token: Secret | None,
        base_url: str = DEFAULT_CODECOV_URL,
        *,
        timeout: float | None = None,
        log: Optional[Callable[[str], None]] = None,
    ):
        """
        Args:
            token: repository upload token (never printed)
            base_url: Codecov instance (e.g. "https://codecov.io")
            timeout: socket timeout; None keeps urllib's default
            log: sink for verbose progress lines
        """
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._log = log

    def _verbose(self, message: str) -> None:
        if self._log is not None:
            self._log(redact(message))

    def _request(
        self,
        method: str,
        url: str,
        data: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Make an HTTP request and return the response body as text.

        Raises:
            UploadError: on HTTP errors and network errors
        """
        req = urllib.request.Request(url, data=data, headers=headers or {}, method=method)
        try:
            if self.timeout is None:
                response = urllib.request.urlopen(req)
            else:
                response = urllib.request.urlopen(req, timeout=self.timeout)
            with response:
                return response.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8", "replace") if e.fp else ""
            raise UploadError(
                f"Codecov request failed: {e.code} {e.reason}",
                url=redact(url),
                body=redact(error_body.strip())[:500],
            ) from None
        except urllib.error.URLError as e:
            raise UploadError(f"Network error: {e.reason}", url=redact(url)) from None
        except OSError as e:
            raise UploadError(f"Network error: {e}", url=redact(url)) from None

    def upload(
        self,
        files: Sequence[str | Path],
        *,
        commit: str,
        branch: str | None = None,
        root: str | Path = ".",
        flags: Sequence[str] = (),
        name: str | None = None,
        service: str | None = None,
        build: str | None = None,
        slug: str | None = None,
    ) -> UploadResult:
        if not commit:
            raise UploadError("cannot upload coverage without a commit SHA")

        payload = build_payload(files, root=root)

        params = {
            "package": f"platcov-{__version__}",
            "commit": commit,
            "branch": branch or "",
            "build": build or "",
            "service": service or "",
            "slug": slug or "",
            "name": name or "",
            "flags": ",".join(flags),
        }
        if self.token:
            params["token"] = self.token.reveal()
        url = f"{self.base_url}/upload/v4?{urlencode(params)}"

        self._verbose(f"POST {url}")
        body = self._request("POST", url, headers={"Accept": "text/plain"})
        lines = [ln.strip() for ln in body.splitlines() if ln.strip()]
        if len(lines) < 2:
            raise UploadError("unexpected response from Codecov", body=body[:500])
        report_url, put_url = lines[0], lines[1]

        self._verbose(f"PUT {put_url.split('?', 1)[0]} ({len(payload)} bytes)")
        self._request(
            "PUT",
            put_url,
            data=payload,
            headers={"Content-Type": "text/plain", "x-amz-acl": "public-read"},
        )
        self._verbose(f"report: {report_url}")
        return UploadResult(report_url=report_url, files=[str(f) for f in files])
