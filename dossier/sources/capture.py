"""Evidence capture: web pages via Firecrawl, documents via direct download.

Every web capture writes ``evidence/web/S###/`` containing ``content.md``,
``links.json`` and ``metadata.json``. The metadata carries a signature
over the source ID, URL, capture time and file hashes, so evidence that
was typed up by hand (rather than fetched) is rejected by the ledger and
the sources gate.

Usage::

    capturer = WebCapturer()
    result = await capturer.capture("S012", "https://example.org/report", evidence_dir)

    await capture_source(case_dir, "S012", "https://example.org/report")
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import httpx

from dossier.config.settings import settings
from dossier.errors import CaptureError

logger = logging.getLogger(__name__)

SIGNATURE_VERSION = "v2"
CAPTURE_SALT = "firecrawl-capture-2026"

# Fields only an LLM summarising a page would write into metadata.
STUB_FIELDS = (
    "summary",
    "key_facts",
    "key_claims",
    "category",
    "credibility",
    "relevance",
    "independence",
    "reliability",
)


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def capture_signature(
    source_id: str,
    url: str,
    captured_at: str,
    files: dict[str, dict[str, Any]],
    version: str = SIGNATURE_VERSION,
) -> str:
    hashes = "|".join(sorted(f["hash"] for f in files.values() if f.get("hash")))
    payload = ":".join([version, source_id, url, captured_at, hashes, CAPTURE_SALT])
    return f"sig_{version}_{sha256_hex(payload.encode('utf-8'))[:32]}"


def capture_receipt(signature: str, key: str | None = None) -> str | None:
    """HMAC receipt over a signature, when ``EVIDENCE_RECEIPT_KEY`` is set."""
    key = settings.EVIDENCE_RECEIPT_KEY if key is None else key
    if not key.strip():
        return None
    return hmac.new(key.encode("utf-8"), signature.encode("utf-8"), "sha256").hexdigest()


@dataclass
class SignatureCheck:
    valid: bool
    reason: str


def verify_capture_signature(
    metadata: dict[str, Any],
    require_receipt: bool = False,
) -> SignatureCheck:
    """Decide whether *metadata* was written by a real capture."""
    for name in STUB_FIELDS:
        if metadata.get(name):
            return SignatureCheck(
                False,
                f'Metadata contains LLM-written field "{name}"; stub evidence, not a capture',
            )

    if metadata.get("id") and not metadata.get("source_id"):
        return SignatureCheck(False, 'Metadata uses "id" instead of "source_id"')

    signature = metadata.get("_capture_signature")
    if not signature:
        if metadata.get("files") and metadata.get("method") and not require_receipt:
            return SignatureCheck(True, "Legacy capture (pre-signature) with files")
        return SignatureCheck(False, "Missing _capture_signature")

    files = metadata.get("files")
    if not isinstance(files, dict):
        return SignatureCheck(False, "Missing files field")

    version = metadata.get("_signature_version", SIGNATURE_VERSION)
    expected = capture_signature(
        metadata.get("source_id", ""),
        metadata.get("url", ""),
        metadata.get("captured_at", ""),
        files,
        version=version,
    )
    if not hmac.compare_digest(signature, expected):
        return SignatureCheck(False, "Signature mismatch (tampered or fabricated)")

    if require_receipt:
        expected_receipt = capture_receipt(signature)
        receipt = metadata.get("_receipt") or ""
        if expected_receipt is None:
            return SignatureCheck(False, "Receipt required but EVIDENCE_RECEIPT_KEY is not set")
        if not hmac.compare_digest(receipt, expected_receipt):
            return SignatureCheck(False, "Missing or invalid evidence receipt")

    return SignatureCheck(True, "Valid capture signature")


# ---------------------------------------------------------------------------
# Web capture
# ---------------------------------------------------------------------------


@dataclass
class CaptureConfig:
    """Firecrawl capture settings. Defaults come from ``Settings``."""
    api_key: str = field(default_factory=lambda: settings.FIRECRAWL_API_KEY)
    api_url: str = field(default_factory=lambda: settings.FIRECRAWL_URL)
    timeout_seconds: float = field(default_factory=lambda: settings.CAPTURE_TIMEOUT)
    max_attempts: int = 3
    rate_limit_backoff: float = 60.0   # seconds × attempt
    retry_backoff: float = 5.0         # seconds × attempt
    wait_for_ms: int = 3000


@dataclass
class CaptureResult:
    source_id: str
    url: str
    success: bool
    evidence_dir: Path
    files: list[str] = field(default_factory=list)
    title: str = ""
    captured_at: str = ""
    content_hash: str | None = None
    error: str = ""
    attempts: int = 1


class _Retryable(Exception):
    """Transient capture failure worth another attempt."""

    def __init__(self, message: str, rate_limited: bool = False) -> None:
        super().__init__(message)
        self.rate_limited = rate_limited


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class WebCapturer:
    """Capture web pages as markdown through the Firecrawl scrape API."""

    def __init__(self, config: CaptureConfig | None = None) -> None:
        self._config = config or CaptureConfig()

    async def _scrape(self, url: str) -> dict[str, Any]:
        payload = {
            "url": url,
            "formats": ["markdown", "links"],
            "waitFor": self._config.wait_for_ms,
            "timeout": int(self._config.timeout_seconds * 1000),
        }
        headers = {
            "Authorization": f"Bearer {self._config.api_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as client:
                resp = await client.post(self._config.api_url, json=payload, headers=headers)
        except (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError) as e:
            raise _Retryable(f"{type(e).__name__}: {e}") from e

        if resp.status_code == 429:
            raise _Retryable("Rate limited", rate_limited=True)
        if resp.status_code != 200:
            raise CaptureError(f"API error {resp.status_code}: {resp.text[:200]}")

        try:
            body = resp.json()
        except ValueError as e:
            raise CaptureError("Invalid JSON from scrape API") from e
        if not isinstance(body, dict):
            raise CaptureError("Invalid JSON from scrape API")
        if not body.get("success"):
            raise CaptureError(f"Scrape failed: {body.get('error') or 'unknown error'}")
        return body.get("data") or body

    async def capture(
        self,
        source_id: str,
        url: str,
        evidence_dir: str | Path,
    ) -> CaptureResult:
        """Capture *url* into *evidence_dir*.

        Never raises for remote failures: a failed capture writes
        ``metadata.json`` with ``errors`` and returns ``success=False``.
        """
        if not self._config.api_key:
            raise CaptureError(
                "FIRECRAWL_API_KEY is not set. Get a key from https://app.firecrawl.dev"
            )

        evidence_dir = Path(evidence_dir)
        evidence_dir.mkdir(parents=True, exist_ok=True)
        start = time.monotonic()

        attempt = 1
        while True:
            logger.info("Capturing %s (attempt %d): %s", source_id, attempt, url)
            try:
                data = await self._scrape(url)
                break
            except _Retryable as e:
                if attempt >= self._config.max_attempts:
                    return self._write_failure(source_id, url, evidence_dir, str(e), attempt)
                backoff = (
                    self._config.rate_limit_backoff
                    if e.rate_limited
                    else self._config.retry_backoff
                )
                logger.warning("%s: %s; retrying in %.0fs", source_id, e, backoff * attempt)
                await asyncio.sleep(backoff * attempt)
                attempt += 1
            except CaptureError as e:
                return self._write_failure(source_id, url, evidence_dir, str(e), attempt)

        files: dict[str, dict[str, Any]] = {}
        markdown = data.get("markdown") or ""
        if markdown:
            raw = markdown.encode("utf-8")
            (evidence_dir / "content.md").write_bytes(raw)
            files["markdown"] = {
                "path": "content.md",
                "hash": f"sha256:{sha256_hex(raw)}",
                "size": len(raw),
            }

        links = data.get("links")
        if isinstance(links, list) and links:
            raw = json.dumps(links, indent=2).encode("utf-8")
            (evidence_dir / "links.json").write_bytes(raw)
            files["links"] = {
                "path": "links.json",
                "hash": f"sha256:{sha256_hex(raw)}",
                "count": len(links),
            }

        page_meta = data.get("metadata") or {}
        captured_at = _now_iso()
        signature = capture_signature(source_id, url, captured_at, files)
        metadata: dict[str, Any] = {
            "source_id": source_id,
            "url": url,
            "title": page_meta.get("title", ""),
            "description": page_meta.get("description", ""),
            "captured_at": captured_at,
            "capture_duration_ms": int((time.monotonic() - start) * 1000),
            "method": "firecrawl",
            "files": files,
            "_signature_version": SIGNATURE_VERSION,
            "_capture_signature": signature,
        }
        receipt = capture_receipt(signature)
        if receipt:
            metadata["_receipt"] = receipt
        (evidence_dir / "metadata.json").write_text(
            json.dumps(metadata, indent=2), encoding="utf-8"
        )

        logger.info("Captured %s (%d files)", source_id, len(files))
        return CaptureResult(
            source_id=source_id,
            url=url,
            success=bool(files),
            evidence_dir=evidence_dir,
            files=[f["path"] for f in files.values()],
            title=metadata["title"],
            captured_at=captured_at,
            content_hash=files.get("markdown", {}).get("hash"),
            error="" if files else "Capture returned no content",
            attempts=attempt,
        )

    @staticmethod
    def _write_failure(
        source_id: str,
        url: str,
        evidence_dir: Path,
        error: str,
        attempts: int,
    ) -> CaptureResult:
        logger.error("Capture failed for %s: %s", source_id, error)
        metadata = {
            "source_id": source_id,
            "url": url,
            "captured_at": _now_iso(),
            "files": {},
            "errors": [error],
        }
        (evidence_dir / "metadata.json").write_text(
            json.dumps(metadata, indent=2), encoding="utf-8"
        )
        return CaptureResult(
            source_id=source_id,
            url=url,
            success=False,
            evidence_dir=evidence_dir,
            error=error,
            attempts=attempts,
        )


# ---------------------------------------------------------------------------
# Document download
# ---------------------------------------------------------------------------


def safe_filename(name: str) -> str:
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("._")
    return name[:120]


@dataclass
class DocumentCapture:
    source_id: str
    url: str
    file_path: Path
    size: int
    hash: str


async def download_document(
    source_id: str,
    url: str,
    case_dir: str | Path,
    filename: str | None = None,
    timeout: float | None = None,
) -> DocumentCapture:
    """Stream a document (PDF, filing, dataset) into ``evidence/documents``."""
    doc_dir = Path(case_dir) / "evidence" / "documents"
    doc_dir.mkdir(parents=True, exist_ok=True)

    base = safe_filename(filename or Path(urlsplit(url).path).name or f"{source_id}.bin")
    file_path = doc_dir / f"{source_id}_{base or 'document'}"

    digest = hashlib.sha256()
    size = 0
    try:
        async with httpx.AsyncClient(
            timeout=timeout or settings.CAPTURE_TIMEOUT,
            follow_redirects=True,
        ) as client:
            async with client.stream("GET", url) as resp:
                if resp.status_code >= 400:
                    raise CaptureError(f"HTTP {resp.status_code} downloading {url}")
                with file_path.open("wb") as fh:
                    async for chunk in resp.aiter_bytes():
                        fh.write(chunk)
                        digest.update(chunk)
                        size += len(chunk)
    except httpx.HTTPError as e:
        file_path.unlink(missing_ok=True)
        raise CaptureError(f"Download failed for {url}: {e}") from e
    except CaptureError:
        file_path.unlink(missing_ok=True)
        raise

    content_hash = f"sha256:{digest.hexdigest()}"
    meta = {
        "source_id": source_id,
        "url": url,
        "filename": file_path.name,
        "downloaded_at": _now_iso(),
        "size": size,
        "hash": content_hash,
    }
    Path(f"{file_path}.meta.json").write_text(json.dumps(meta, indent=2), encoding="utf-8")
    logger.info("Downloaded %s -> %s (%d bytes)", source_id, file_path.name, size)
    return DocumentCapture(source_id, url, file_path, size, content_hash)


# ---------------------------------------------------------------------------
# Capture + register + ledger
# ---------------------------------------------------------------------------


async def capture_source(
    case_dir: str | Path,
    source_id: str,
    url: str,
    capturer: WebCapturer | None = None,
) -> CaptureResult:
    """Capture a registered source and record it in sources.json and the ledger."""
    from dossier.ledger import Ledger
    from dossier.sources.registry import SourceRegistry

    case_dir = Path(case_dir)
    capturer = capturer or WebCapturer()
    evidence_dir = case_dir / "evidence" / "web" / source_id
    result = await capturer.capture(source_id, url, evidence_dir)
    if not result.success:
        return result

    registry = SourceRegistry(case_dir)
    relative = str(evidence_dir.relative_to(case_dir))
    if registry.get(source_id) is None:
        registry.upsert({"id": source_id, "url": url, "title": result.title})
    registry.mark_captured(
        source_id,
        evidence_path=relative,
        content_hash=result.content_hash,
        captured_at=result.captured_at,
        title=result.title or None,
    )
    Ledger(case_dir).append(
        "source_capture",
        source_id=source_id,
        url=url,
        evidence_path=relative,
    )
    return result


async def capture_document(
    case_dir: str | Path,
    source_id: str,
    url: str,
    filename: str | None = None,
) -> DocumentCapture:
    """Download a document source and record it in sources.json and the ledger."""
    from dossier.ledger import Ledger
    from dossier.sources.registry import SourceRegistry

    case_dir = Path(case_dir)
    doc = await download_document(source_id, url, case_dir, filename=filename)

    registry = SourceRegistry(case_dir)
    relative = str(doc.file_path.relative_to(case_dir))
    if registry.get(source_id) is None:
        registry.upsert({"id": source_id, "url": url, "source_type": "document"})
    registry.mark_captured(source_id, evidence_path=relative, content_hash=doc.hash)
    Ledger(case_dir).append(
        "source_capture",
        source_id=source_id,
        url=url,
        evidence_path=relative,
    )
    return doc
