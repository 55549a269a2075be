#!/usr/bin/env python3
import argparse
import json
import logging
import os
import posixpath
import random
import re
import sys
import threading
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from threading import Lock
from typing import (
    Any,
    Callable,
    Deque,
    Dict,
    Iterable,
    List,
    Mapping,
    NamedTuple,
    Optional,
    Set,
    Tuple,
    Union,
)
from urllib.parse import unquote, urljoin, urlparse, urlunparse

import requests
from bs4 import BeautifulSoup, Tag
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

# -------------------- Config --------------------

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)
DEFAULT_HEADERS = {
    "User-Agent": DEFAULT_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.7",
}
DEFAULT_OUTPUT_DIR = "cloned-site"

# framework-injected router state; left in place it hijacks navigation
HYDRATION_SCRIPT_SELECTOR = 'script[id="__NEXT_DATA__"]'
HTML_REFERENCE_SELECTOR = (
    'a, link[rel~="stylesheet"], script[src], img[src], source[srcset]'
)

CSS_URL_RE = re.compile(r"url\(\s*([\"']?)([^)\"']+)\1\s*\)", re.IGNORECASE)
SRCSET_CANDIDATE_RE = re.compile(r"(^|,)(\s*)([^\s,]+)")
SCHEME_RE = re.compile(r"^([a-zA-Z][a-zA-Z0-9+.\-]*):")
HOST_UNSAFE_RE = re.compile(r"[^a-z0-9.]", re.IGNORECASE)

IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".gif", ".svg", ".ico", ".webp"}
FONT_EXTS = {".woff", ".woff2", ".ttf"}
HTTP_SCHEMES = {"http", "https"}
CONTACT_SCHEMES = {"mailto", "tel", "sms"}

# -------------------- Settings --------------------


@dataclass
class Settings:
    timeout: float = 15.0
    workers: int = 1
    retries: int = 3
    max_bytes: int = 50_000_000
    user_agent: str = DEFAULT_USER_AGENT

    # Throttle (0 disables a bucket)
    global_rps: float = 0.0
    per_host_rps: float = 0.0
    burst: int = 4
    jitter: float = 0.0
    delay: float = 0.0

    # Run control
    max_seconds: Optional[float] = None
    manifest_path: Optional[str] = None


# -------------------- Errors --------------------


class MirrorError(Exception):
    pass


class InvalidInput(MirrorError, ValueError):
    pass


class FetchError(MirrorError):
    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class NetworkError(FetchError):
    pass


class HttpError(FetchError):
    def __init__(self, url: str, status: int):
        super().__init__(url, f"HTTP {status}")
        self.status = status


class UnresolvableReference(MirrorError):
    pass


# -------------------- Throttle --------------------


class TokenBucket:
    def __init__(self, rate: float, capacity: float):
        self.rate = max(rate, 0.001)
        self.capacity = max(capacity, 1.0)
        self.tokens = self.capacity
        self.ts = time.monotonic()
        self.lock = Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        delta = now - self.ts
        if delta > 0:
            self.tokens = min(self.capacity, self.tokens + delta * self.rate)
            self.ts = now

    def consume_wait(self, tokens: float = 1.0) -> float:
        with self.lock:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return 0.0
            need = tokens - self.tokens
            wait_s = need / self.rate
            self.tokens = 0.0
            self.ts = time.monotonic() + wait_s
            return max(0.0, wait_s)


class Throttle:
    def __init__(self, settings: Settings):
        self.s = settings
        self.global_bucket: Optional[TokenBucket] = (
            TokenBucket(settings.global_rps, settings.burst)
            if settings.global_rps > 0
            else None
        )
        self.host_buckets: Dict[str, TokenBucket] = {}
        self.lock = Lock()

    def _host_bucket(self, host: str) -> Optional[TokenBucket]:
        if self.s.per_host_rps <= 0:
            return None
        with self.lock:
            b = self.host_buckets.get(host)
            if b is None:
                b = TokenBucket(self.s.per_host_rps, self.s.burst)
                self.host_buckets[host] = b
            return b

    def acquire(self, url: str) -> float:
        host = urlparse(url).netloc
        g = self.global_bucket.consume_wait(1.0) if self.global_bucket else 0.0
        hb = self._host_bucket(host)
        h = hb.consume_wait(1.0) if hb else 0.0
        wait_s = max(self.s.delay, g, h)
        if wait_s > 0 and self.s.jitter > 0:
            wait_s += random.uniform(0, self.s.jitter * wait_s)
        if wait_s > 0:
            time.sleep(wait_s)
        return wait_s


# -------------------- URL mapping --------------------


def normalize_url(u: str) -> str:
    p = urlparse(u)
    path = p.path or "/"
    return urlunparse((p.scheme.lower(), p.netloc.lower(), path, p.params, p.query, ""))


def validate_seed_url(url: str) -> str:
    if not isinstance(url, str) or not url.strip():
        raise InvalidInput("a seed URL is required")
    url = url.strip()
    try:
        p = urlparse(url)
        host = p.hostname
    except ValueError as e:
        raise InvalidInput(f"invalid URL {url!r}: {e}") from e
    if p.scheme.lower() not in HTTP_SCHEMES or not host:
        raise InvalidInput(f"invalid URL {url!r}: expected an absolute http(s) URL")
    return normalize_url(url)


def url_ext(url: str) -> str:
    return posixpath.splitext(urlparse(url).path)[1].lower()


def is_image_url(url: str) -> bool:
    return url_ext(url) in IMAGE_EXTS


def is_font_url(url: str) -> bool:
    return url_ext(url) in FONT_EXTS


def local_path(url: str, output_root: Union[str, Path]) -> Path:
    """Map an asset URL onto a file under ``output_root``."""
    path = urlparse(url).path
    if not path or path.endswith("/") or not posixpath.splitext(path)[1]:
        path = posixpath.join(path or "/", "index.html")
    segs = [seg for seg in unquote(path).split("/") if seg not in ("", ".", "..")]
    return Path(output_root).joinpath(*segs)


def relative_ref(doc_path: Path, target_path: Path) -> str:
    rel = Path(os.path.relpath(target_path, doc_path.parent)).as_posix()
    if not rel or rel == ".":
        return target_path.name
    if rel.startswith("../"):
        return rel
    return f"./{rel}"


def default_output_dir_for(url: str) -> str:
    host = urlparse(validate_seed_url(url)).hostname or ""
    return HOST_UNSAFE_RE.sub("_", host)


# -------------------- Classification --------------------


class AssetKind(Enum):
    HTML = "html"
    STYLESHEET = "stylesheet"
    OTHER = "binary-or-other"

    @classmethod
    def from_content_type(cls, content_type: Optional[str]) -> "AssetKind":
        ct = (content_type or "").lower()
        if "text/html" in ct:
            return cls.HTML
        if "text/css" in ct:
            return cls.STYLESHEET
        return cls.OTHER


class ReferenceKind(Enum):
    NAVIGATIONAL = "navigational"
    MEDIA = "media"
    STRUCTURAL = "structural"
    CROSS_ORIGIN = "cross-origin"
    INLINE_DATA = "inline-data"
    UNRESOLVABLE = "unresolvable"


def resolve_reference(value: str, base_url: str) -> str:
    try:
        absu = urljoin(base_url, value.strip())
        p = urlparse(absu)
        host = p.hostname
    except ValueError as e:
        raise UnresolvableReference(value) from e
    if p.scheme.lower() not in HTTP_SCHEMES or not host:
        raise UnresolvableReference(value)
    if not p.path:
        absu = urlunparse(p._replace(path="/"))
    return absu


def classify_reference(
    value: str, doc_url: str, base_host: str, role: ReferenceKind
) -> Tuple[ReferenceKind, Optional[str]]:
    v = value.strip()
    if v.lower().startswith("data:"):
        return ReferenceKind.INLINE_DATA, None
    m = SCHEME_RE.match(v)
    if m and m.group(1).lower() in CONTACT_SCHEMES:
        return ReferenceKind.CROSS_ORIGIN, None
    try:
        absu = resolve_reference(v, doc_url)
    except UnresolvableReference:
        return ReferenceKind.UNRESOLVABLE, None
    if urlparse(absu).hostname != base_host:
        return ReferenceKind.CROSS_ORIGIN, absu
    if role is ReferenceKind.NAVIGATIONAL:
        return ReferenceKind.NAVIGATIONAL, absu
    if role is ReferenceKind.MEDIA or is_image_url(absu):
        return ReferenceKind.MEDIA, absu
    return ReferenceKind.STRUCTURAL, absu


class ReferenceRewriter:
    def __init__(
        self,
        base_host: str,
        output_root: Path,
        enqueue: Callable[[str], Any],
        on_warning: Optional[Callable[[str], None]] = None,
    ):
        self.base_host = base_host
        self.output_root = output_root
        self.enqueue = enqueue
        self.on_warning = on_warning

    def rewrite(
        self, value: str, doc_url: str, doc_path: Path, role: ReferenceKind
    ) -> str:
        kind, absu = classify_reference(value, doc_url, self.base_host, role)
        if kind is ReferenceKind.UNRESOLVABLE:
            msg = f"Skipping invalid URL in {doc_url}: {value}"
            logging.warning(msg)
            if self.on_warning:
                self.on_warning(msg)
            return value
        if absu is None or kind is ReferenceKind.CROSS_ORIGIN:
            return value
        if kind in (ReferenceKind.NAVIGATIONAL, ReferenceKind.MEDIA):
            return absu
        target = normalize_url(absu)
        self.enqueue(target)
        return relative_ref(doc_path, local_path(target, self.output_root))


# -------------------- HTTP --------------------


@dataclass
class FetchedAsset:
    url: str
    status: int
    content_type: str
    content: bytes
    text: Optional[str] = None

    def decoded_text(self) -> str:
        if self.text is not None:
            return self.text
        return decode_body(self.content, self.content_type)


def decode_body(content: bytes, content_type: str) -> str:
    """Decode with the header's charset when one is declared, else UTF-8.

    requests falls back to ISO-8859-1 for any ``text/*`` type without a
    charset, which mangles UTF-8 stylesheets and pages on the way back out.
    """
    if "charset=" in (content_type or "").lower():
        charset = requests.utils.get_encoding_from_headers(
            {"content-type": content_type}
        )
        if charset:
            try:
                return content.decode(charset, errors="replace")
            except LookupError:
                logging.debug("unknown charset %r; decoding as utf-8", charset)
    return content.decode("utf-8-sig", errors="replace")


def build_session(settings: Optional[Settings] = None) -> requests.Session:
    settings = settings or Settings()
    s = requests.Session()
    retry = Retry(
        total=settings.retries,
        backoff_factor=0.5,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods={"GET", "HEAD"},
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    pool = max(10, settings.workers * 2)
    adapter = HTTPAdapter(max_retries=retry, pool_connections=pool, pool_maxsize=pool)
    s.mount("http://", adapter)
    s.mount("https://", adapter)
    s.headers.update(DEFAULT_HEADERS)
    s.headers["User-Agent"] = settings.user_agent
    return s


class Fetcher:
    def __init__(self, session: Any, throttle: Throttle, settings: Settings):
        self.session = session
        self.throttle = throttle
        self.settings = settings
        # injected sessions may not carry the browser identity themselves
        session_headers = getattr(session, "headers", None) or {}
        if session_headers.get("User-Agent") == settings.user_agent:
            self.headers: Optional[Dict[str, str]] = None
        else:
            self.headers = {"User-Agent": settings.user_agent}

    def _read_capped(self, url: str, resp: Any) -> bytes:
        chunks: List[bytes] = []
        total = 0
        try:
            for chunk in resp.iter_content(chunk_size=64 * 1024):
                if not chunk:
                    continue
                total += len(chunk)
                if total > self.settings.max_bytes:
                    raise FetchError(
                        url, f"too large (over {self.settings.max_bytes} bytes)"
                    )
                chunks.append(chunk)
        except requests.RequestException as e:
            raise NetworkError(url, str(e)) from e
        return b"".join(chunks)

    def get(self, url: str, *, binary: bool = False) -> FetchedAsset:
        self.throttle.acquire(url)
        try:
            resp = self.session.get(
                url, timeout=self.settings.timeout, headers=self.headers, stream=True
            )
        except requests.RequestException as e:
            raise NetworkError(url, str(e)) from e
        try:
            if not 200 <= resp.status_code < 300:
                raise HttpError(url, resp.status_code)
            cl = resp.headers.get("Content-Length")
            if cl:
                try:
                    if int(cl) > self.settings.max_bytes:
                        raise FetchError(url, f"too large ({cl} bytes)")
                except ValueError:
                    pass
            content = self._read_capped(url, resp)
        finally:
            resp.close()
        content_type = resp.headers.get("Content-Type", "") or ""
        return FetchedAsset(
            url=url,
            status=resp.status_code,
            content_type=content_type,
            content=content,
            text=None if binary else decode_body(content, content_type),
        )


# -------------------- Filesystem --------------------


def ensure_parent_dir(p: Path) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)


def write_asset(path: Path, data: bytes) -> None:
    ensure_parent_dir(path)
    tmp = path.with_name(f".{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
    try:
        tmp.write_bytes(data)
        os.replace(tmp, path)
    except (OSError, ValueError):
        try:
            tmp.unlink(missing_ok=True)
        except (OSError, ValueError):
            pass
        raise


def atomic_write_json(path: Path, data: dict) -> None:
    ensure_parent_dir(path)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
    os.replace(tmp, path)


# -------------------- HTML rewriting --------------------


class AttributeEdit(NamedTuple):
    tag: Tag
    attr: str
    value: str


def bs4_parse(html: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(html, "lxml")
    except Exception:
        return BeautifulSoup(html, "html.parser")


def serialize_html(soup: BeautifulSoup) -> str:
    try:
        return soup.decode(formatter="html")
    except Exception:
        return str(soup)


def strip_hydration_payload(soup: BeautifulSoup) -> int:
    tags = soup.select(HYDRATION_SCRIPT_SELECTOR)
    for tag in tags:
        tag.decompose()
    return len(tags)


def reference_attr(tag: Tag) -> Tuple[str, ReferenceKind]:
    if tag.name == "a":
        return "href", ReferenceKind.NAVIGATIONAL
    if tag.name == "link":
        return "href", ReferenceKind.STRUCTURAL
    if tag.name == "source":
        return "srcset", ReferenceKind.MEDIA
    if tag.name == "img":
        return "src", ReferenceKind.MEDIA
    return "src", ReferenceKind.STRUCTURAL


def rewrite_srcset(value: str, rewrite_url: Callable[[str], str]) -> str:
    def repl(m: re.Match) -> str:
        return f"{m.group(1)}{m.group(2)}{rewrite_url(m.group(3))}"

    return SRCSET_CANDIDATE_RE.sub(repl, value)


def plan_html_edits(
    soup: BeautifulSoup, page_url: str, page_path: Path, rewriter: ReferenceRewriter
) -> List[AttributeEdit]:
    edits: List[AttributeEdit] = []
    for tag in soup.select(HTML_REFERENCE_SELECTOR):
        attr, role = reference_attr(tag)
        value = tag.get(attr)
        if not value or not isinstance(value, str) or value.startswith("data:"):
            continue
        if attr == "srcset":
            new_value = rewrite_srcset(
                value, lambda u: rewriter.rewrite(u, page_url, page_path, role)
            )
        else:
            new_value = rewriter.rewrite(value, page_url, page_path, role)
        if new_value != value:
            edits.append(AttributeEdit(tag, attr, new_value))
    return edits


def apply_html_edits(edits: Iterable[AttributeEdit]) -> None:
    for edit in edits:
        edit.tag[edit.attr] = edit.value


def rewrite_html(
    html: str, page_url: str, page_path: Path, rewriter: ReferenceRewriter
) -> str:
    soup = bs4_parse(html)
    if strip_hydration_payload(soup):
        logging.debug("removed hydration payload from %s", page_url)
    apply_html_edits(plan_html_edits(soup, page_url, page_path, rewriter))
    return serialize_html(soup)


# -------------------- CSS rewriting --------------------


def rewrite_css(
    css_text: str, css_url: str, css_path: Path, rewriter: ReferenceRewriter
) -> str:
    def repl(m: re.Match) -> str:
        q = m.group(1) or ""
        u = m.group(2).strip()
        if not u or u.lower().startswith("data:"):
            return m.group(0)
        nu = rewriter.rewrite(u, css_url, css_path, ReferenceKind.STRUCTURAL)
        if nu == u:
            return m.group(0)
        return f"url({q}{nu}{q})"

    return CSS_URL_RE.sub(repl, css_text)


# -------------------- Frontier --------------------


class Frontier:
    def __init__(self, init: Optional[Iterable[str]] = None):
        self._queue: Deque[str] = deque()
        self._pending: Set[str] = set()
        self._visited: Set[str] = set()
        self._lock = Lock()
        for u in init or []:
            self.add(u)

    def add(self, url: str) -> bool:
        with self._lock:
            if url in self._pending or url in self._visited:
                return False
            self._pending.add(url)
            self._queue.append(url)
            return True

    def claim(self) -> Optional[str]:
        with self._lock:
            while self._queue:
                url = self._queue.popleft()
                self._pending.discard(url)
                if url in self._visited:
                    continue
                self._visited.add(url)
                return url
            return None

    def is_visited(self, url: str) -> bool:
        with self._lock:
            return url in self._visited

    def visited(self) -> Set[str]:
        with self._lock:
            return set(self._visited)

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)


# -------------------- Engine --------------------


@dataclass
class MirrorResult:
    seed_url: str
    output_dir: Path
    ok: bool = False
    message: str = ""
    error: Optional[str] = None
    visited: List[str] = field(default_factory=list)
    written: Dict[str, Path] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    cancelled: bool = False
    elapsed: float = 0.0

    @classmethod
    def failure(
        cls, seed_url: str, output_dir: Union[str, Path], error: BaseException
    ) -> "MirrorResult":
        return cls(
            seed_url=seed_url,
            output_dir=Path(os.path.abspath(output_dir)),
            ok=False,
            error=str(error),
            message=f"Failed to clone website: {error}",
        )


class MirrorEngine:
    def __init__(
        self,
        seed_url: str,
        output_dir: Union[str, Path] = DEFAULT_OUTPUT_DIR,
        settings: Optional[Settings] = None,
        *,
        session: Any = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.seed_url = validate_seed_url(seed_url)
        self.settings = settings or Settings()
        self.base_host = urlparse(self.seed_url).hostname
        self.output_dir = Path(output_dir).expanduser().resolve()
        self.session = session if session is not None else build_session(self.settings)
        self.fetcher = Fetcher(self.session, Throttle(self.settings), self.settings)
        self.cancel_event = cancel_event or threading.Event()
        self.frontier = Frontier([self.seed_url])
        self.rewriter = ReferenceRewriter(
            self.base_host, self.output_dir, self.frontier.add, self._record_warning
        )
        self.result = MirrorResult(seed_url=seed_url.strip(), output_dir=self.output_dir)
        self._lock = Lock()
        self._deadline: Optional[float] = None

    def _record_warning(self, msg: str) -> None:
        with self._lock:
            self.result.warnings.append(msg)

    def _record_failure(self, url: str, reason: str) -> None:
        logging.warning("Could not process %s: %s", url, reason)
        with self._lock:
            self.result.failures[url] = reason

    def _should_stop(self) -> bool:
        if self.cancel_event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            logging.warning(
                "Time budget of %.1fs exhausted; stopping", self.settings.max_seconds
            )
            self.cancel_event.set()
            return True
        return False

    def _next_in_scope(self) -> Optional[str]:
        while True:
            url = self.frontier.claim()
            if url is None:
                return None
            if urlparse(url).hostname != self.base_host:
                logging.debug("skip cross-origin asset: %s", url)
                continue
            self.result.visited.append(url)
            return url

    def _render(self, asset: FetchedAsset, target: Path) -> bytes:
        kind = AssetKind.from_content_type(asset.content_type)
        if kind is AssetKind.HTML:
            html = rewrite_html(asset.decoded_text(), asset.url, target, self.rewriter)
            return html.encode("utf-8")
        if kind is AssetKind.STYLESHEET:
            css = rewrite_css(asset.decoded_text(), asset.url, target, self.rewriter)
            return css.encode("utf-8")
        return asset.content

    def _process(self, url: str) -> None:
        target = local_path(url, self.output_dir)
        logging.info("Processing: %s", url)
        try:
            ensure_parent_dir(target)
        except (OSError, ValueError) as e:
            self._record_failure(url, f"cannot create directory for {target}: {e}")
            return
        try:
            asset = self.fetcher.get(url, binary=is_font_url(url))
        except FetchError as e:
            self._record_failure(url, e.reason)
            return
        try:
            data = self._render(asset, target)
        except Exception as e:
            self._record_failure(url, f"cannot rewrite content: {e}")
            return
        try:
            write_asset(target, data)
        except (OSError, ValueError) as e:
            self._record_failure(url, f"cannot write {target}: {e}")
            return
        with self._lock:
            self.result.written[url] = target
        logging.debug("saved %s -> %s", url, target)

    def _drain(self) -> None:
        workers = max(1, self.settings.workers)
        with ThreadPoolExecutor(max_workers=workers) as pool:
            pending: Dict[Future, str] = {}
            try:
                while True:
                    while len(pending) < workers and not self._should_stop():
                        url = self._next_in_scope()
                        if url is None:
                            break
                        pending[pool.submit(self._process, url)] = url
                    if not pending:
                        break
                    done, _ = wait(pending, return_when=FIRST_COMPLETED)
                    for fut in done:
                        url = pending.pop(fut)
                        try:
                            fut.result()
                        except Exception as e:
                            self._record_failure(url, f"unexpected error: {e}")
            except KeyboardInterrupt:
                logging.warning("Interrupted; finishing %d in-flight asset(s)", len(pending))
                self.cancel_event.set()
                self.result.cancelled = True
                wait(pending)
        if self.cancel_event.is_set() and len(self.frontier):
            self.result.cancelled = True

    def run(self) -> MirrorResult:
        started = time.monotonic()
        if self.settings.max_seconds:
            self._deadline = started + self.settings.max_seconds
        self.output_dir.mkdir(parents=True, exist_ok=True)
        logging.info("Mirroring %s into %s", self.seed_url, self.output_dir)
        try:
            self._drain()
        finally:
            self.result.elapsed = time.monotonic() - started

        r = self.result
        if self.seed_url in r.written:
            r.ok = True
            r.message = (
                f"Successfully created a hybrid clone of {r.seed_url} in {r.output_dir}"
            )
            if r.failures:
                logging.warning("%d asset(s) could not be mirrored", len(r.failures))
        else:
            reason = r.failures.get(self.seed_url)
            if reason is None:
                reason = "run cancelled" if r.cancelled else "nothing was written"
            r.error = f"could not mirror {r.seed_url}: {reason}"
            r.message = f"Failed to clone website: {r.error}"
        return r


def mirror_site(
    seed_url: str,
    output_dir: Union[str, Path] = DEFAULT_OUTPUT_DIR,
    settings: Optional[Settings] = None,
    *,
    session: Any = None,
    cancel_event: Optional[threading.Event] = None,
) -> MirrorResult:
    """Run one hybrid mirror. Never raises; failures come back as a result."""
    settings = settings or Settings()
    try:
        engine = MirrorEngine(
            seed_url, output_dir, settings, session=session, cancel_event=cancel_event
        )
        result = engine.run()
    except Exception as e:
        logging.error("Cloning failed: %s", e)
        return MirrorResult.failure(str(seed_url), output_dir, e)
    if settings.manifest_path:
        try:
            write_manifest(result, Path(settings.manifest_path))
        except OSError as e:
            logging.warning("failed to write manifest %s: %s", settings.manifest_path, e)
    return result


# -------------------- Tool surface --------------------


def clone_website(
    url: str,
    output_dir: str = DEFAULT_OUTPUT_DIR,
    settings: Optional[Settings] = None,
    *,
    session: Any = None,
) -> str:
    return mirror_site(url, output_dir, settings, session=session).message


def clone_website_tool(params: Union[Mapping[str, Any], str]) -> str:
    """Entry point for a tool-dispatch loop: ``{"url": ..., "outputDir": ...}``."""
    if isinstance(params, str):
        params = {"url": params}
    if not isinstance(params, Mapping):
        return "Failed to clone website: tool input must be an object with a 'url'"
    url = params.get("url") or ""
    output_dir = params.get("outputDir") or params.get("output_dir") or DEFAULT_OUTPUT_DIR
    return clone_website(str(url), str(output_dir))


TOOLS: Dict[str, Callable[[Union[Mapping[str, Any], str]], str]] = {
    "cloneWebsite": clone_website_tool,
}


# -------------------- Manifest --------------------


def write_manifest(result: MirrorResult, path: Path) -> None:
    def rel(p: Path) -> str:
        try:
            return p.relative_to(result.output_dir).as_posix()
        except ValueError:
            return str(p)

    created_ts = (
        datetime.now(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )
    data = {
        "site": result.seed_url,
        "output_dir": str(result.output_dir),
        "created_utc": created_ts,
        "ok": result.ok,
        "cancelled": result.cancelled,
        "elapsed_seconds": round(result.elapsed, 3),
        "visited": result.visited,
        "written": {u: rel(p) for u, p in result.written.items()},
        "failures": result.failures,
        "warnings": result.warnings,
    }
    atomic_write_json(path, data)
    logging.info("manifest written: %s", path)


# -------------------- Config loader --------------------


def load_config_file(path: str) -> Dict[str, Any]:
    p = Path(path)
    suf = p.suffix.lower()
    if suf in {".toml", ".tml"}:
        try:
            import tomllib  # py311+
        except ImportError:
            try:
                import tomli as tomllib  # backport
            except ImportError:
                raise RuntimeError("TOML config requires Python 3.11+ or 'tomli'")
        with open(p, "rb") as f:
            return tomllib.load(f) or {}
    elif suf in {".yaml", ".yml"}:
        import yaml

        with open(p, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise RuntimeError("Top-level YAML must be a mapping")
        return data
    else:
        raise RuntimeError("Unsupported config format. Use .toml or .yaml")


# -------------------- CLI --------------------


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description=(
            "Mirror a site's HTML, CSS, scripts and fonts locally while images "
            "and page links keep pointing at the live origin."
        ),
    )
    p.add_argument("--config", type=str, help="path to config.toml|.yaml", default=None)

    p.add_argument("url", help="http(s) URL to mirror")
    p.add_argument(
        "output_folder",
        nargs="?",
        default=None,
        help="output directory (default: derived from the hostname)",
    )
    p.add_argument("--timeout", type=float, default=15.0, help="request timeout seconds")
    p.add_argument("--workers", type=int, default=1, help="concurrent fetches")
    p.add_argument("--retries", type=int, default=3, help="retries per request")
    p.add_argument(
        "--max-bytes", type=int, default=50_000_000, help="max declared bytes per file"
    )
    p.add_argument(
        "--user-agent", type=str, default=DEFAULT_USER_AGENT, help="User-Agent header"
    )
    p.add_argument("--verbose", action="store_true", help="debug logging")

    # throttle
    p.add_argument(
        "--global-rps", type=float, default=0.0, help="global requests/sec (0 = off)"
    )
    p.add_argument(
        "--per-host-rps", type=float, default=0.0, help="per-host requests/sec (0 = off)"
    )
    p.add_argument("--burst", type=int, default=4, help="token-bucket burst")
    p.add_argument("--jitter", type=float, default=0.0, help="delay jitter 0..1")
    p.add_argument("--delay", type=float, default=0.0, help="base delay seconds")

    # run control
    p.add_argument(
        "--max-seconds",
        type=float,
        default=None,
        help="stop claiming new assets after this many seconds",
    )
    p.add_argument(
        "--manifest", type=str, default=None, help="write a JSON run summary here"
    )
    return p


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = build_arg_parser()
    preliminary, _ = parser.parse_known_args(argv)
    if preliminary.config:
        cfg = load_config_file(preliminary.config)
        if isinstance(cfg, dict):
            flat = {k: v for k, v in cfg.items() if not isinstance(v, dict)}
            for g in ("general", "mirror", "throttle"):
                if isinstance(cfg.get(g), dict):
                    flat.update(cfg[g])
            parser.set_defaults(**{k.replace("-", "_"): v for k, v in flat.items()})
    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace) -> Settings:
    return Settings(
        timeout=max(0.1, args.timeout),
        workers=max(1, args.workers),
        retries=max(0, args.retries),
        max_bytes=max(1024, args.max_bytes),
        user_agent=args.user_agent or DEFAULT_USER_AGENT,
        global_rps=max(0.0, args.global_rps),
        per_host_rps=max(0.0, args.per_host_rps),
        burst=max(1, args.burst),
        jitter=max(0.0, min(1.0, args.jitter)),
        delay=max(0.0, args.delay),
        max_seconds=args.max_seconds if args.max_seconds and args.max_seconds > 0 else None,
        manifest_path=args.manifest,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    try:
        output_folder = args.output_folder or default_output_dir_for(args.url)
    except InvalidInput as e:
        print(f"Invalid URL ({e}). Use format: https://example.com")
        return 1

    result = mirror_site(args.url, output_folder, settings_from_args(args))
    print(result.message)
    if result.ok:
        print(f"Files saved: {len(result.written)}")
        if result.failures:
            print(f"Skipped: {len(result.failures)}")
        if result.cancelled:
            print("Stopped early; the mirror is partial.")
    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
