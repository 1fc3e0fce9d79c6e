"""
Image URL discovery for Syscom product records.

The catalog API under-reports images, so candidates come from several
places, cheapest first:

    1. URLs present in the record (cover first) plus query-stripped copies
    2. sibling filenames guessed from Syscom's naming convention
    3. the HTML index of the image directory on the FTP host
    4. the public product page
    5. optional HEAD probes to drop URLs that do not exist

Stages 3-5 do network I/O and degrade to "nothing found" on failure.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote, urljoin, urlsplit, urlunsplit

import requests
from bs4 import BeautifulSoup

from syscom_sync.config import SYSCOM_FTP_HOST, ImageConfig
from syscom_sync.mapping import extract_sku, extract_vendor

logger = logging.getLogger(__name__)

IMAGE_EXT_RE = re.compile(r"\.(png|jpe?g|webp|gif)(\?|#|$)", re.IGNORECASE)
_SYSCOM_IMAGE_RE = re.compile(
    r"https://ftp\d*\.syscom\.mx/[^\s\"'<>]+?\.(?:png|jpe?g|webp|gif)", re.IGNORECASE
)
_SIZE_PARAMS = {"w", "h", "width", "height", "size", "max", "quality", "q"}
_EXT_RE = re.compile(r"(\.[a-z0-9]+)(\?.*)?$", re.IGNORECASE)

SIBLING_LIMIT = 8


class _OrderedUrls:
    """Insertion-ordered URL set with a hard cap."""

    def __init__(self, limit: int, initial: Iterable[str] = ()) -> None:
        self.limit = limit
        self._urls: Dict[str, None] = {}
        self.extend(initial)

    def add(self, url: str) -> bool:
        if self.full or url in self._urls:
            return False
        self._urls[url] = None
        return True

    def extend(self, urls: Iterable[str]) -> None:
        for url in urls:
            if self.full:
                break
            self.add(url)

    @property
    def full(self) -> bool:
        return len(self._urls) >= self.limit

    def __len__(self) -> int:
        return len(self._urls)

    def as_list(self) -> List[str]:
        return list(self._urls)


# ---------------------------------------------------------------------------
# Stage 1: URLs present in the record
# ---------------------------------------------------------------------------

def strip_size_params(url: str) -> str:
    """Drop size/quality query params (w, h, width, q, ...) from an image URL."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    # raw pairs are kept as written; re-encoding would mint a new URL for the same file
    pairs = parts.query.split("&")
    kept = [p for p in pairs if p.split("=", 1)[0].lower() not in _SIZE_PARAMS]
    if len(kept) == len(pairs):
        return url
    return urlunsplit(parts._replace(query="&".join(kept)))


def _urlish(item: Any) -> Optional[str]:
    if isinstance(item, str):
        return item
    if isinstance(item, dict):
        for key in ("url", "src", "original", "big", "hires"):
            if isinstance(item.get(key), str) and item[key]:
                return item[key]
    return None


def _order_key(item: Dict[str, Any]) -> float:
    try:
        return float(item.get("orden", item.get("order")) or 0)
    except (TypeError, ValueError):
        return 0.0


def iter_record_images(record: Dict[str, Any]) -> Iterable[str]:
    """Yield image URLs found in a record, cover image first, in source order."""
    if isinstance(record.get("img_portada"), str):
        yield record["img_portada"]

    imagenes = record.get("imagenes")
    if isinstance(imagenes, list):
        ordered = [it for it in imagenes if isinstance(it, dict) and isinstance(it.get("url"), str)]
        for it in sorted(ordered, key=_order_key):
            yield it["url"]

    for key in ("fotos", "galeria", "imagenes_url"):
        items = record.get(key)
        if isinstance(items, list):
            for it in items:
                url = _urlish(it)
                if url:
                    yield url

    if isinstance(record.get("imagen"), str):
        yield record["imagen"]

    recursos = record.get("recursos")
    if isinstance(recursos, list):
        for res in recursos:
            if not isinstance(res, dict):
                continue
            url = res.get("url") or res.get("src")
            if isinstance(url, str) and IMAGE_EXT_RE.search(url):
                yield url


def collect_basic_images(record: Dict[str, Any], max_images: int) -> List[str]:
    urls = _OrderedUrls(max_images)
    for raw in iter_record_images(record):
        url = raw.strip()
        if not url:
            continue
        urls.add(url)
        urls.add(strip_size_params(url))
        if urls.full:
            break
    return urls.as_list()


# ---------------------------------------------------------------------------
# Stage 2: sibling filenames
# ---------------------------------------------------------------------------

def guess_siblings(url: str) -> List[str]:
    """
    Guess other gallery images from a Syscom image URL.

    name-0.jpg -> name-1..8.jpg, name-1.jpg -> name-2..8.jpg,
    name-p.jpg -> name.jpg, name-1..8, name-AD-1..8-p, name-i, name-LIST-i.
    Nothing here is checked for existence.
    """
    m_ext = _EXT_RE.search(url)
    ext = m_ext.group(1) if m_ext else ""
    base = url[: m_ext.start()] if m_ext else url

    out: List[str] = []
    m = re.match(r"(.*?)([-_])0$", base)
    if m:
        stem, sep = m.groups()
        out.extend(f"{stem}{sep}{i}{ext}" for i in range(1, SIBLING_LIMIT + 1))

    m = re.match(r"(.*?)([-_])1$", base)
    if m:
        stem, sep = m.groups()
        out.extend(f"{stem}{sep}{i}{ext}" for i in range(2, SIBLING_LIMIT + 1))

    m = re.match(r"(.*?)([-_])p$", base, re.IGNORECASE)
    if m:
        stem, sep = m.groups()
        out.append(f"{stem}{ext}")
        for i in range(1, SIBLING_LIMIT + 1):
            out.append(f"{stem}{sep}{i}{ext}")
            out.append(f"{stem}{sep}AD-{i}-p{ext}")
        out.append(f"{stem}{sep}i{ext}")
        out.append(f"{stem}{sep}LIST-i{ext}")

    if not re.search(r"-p$", base, re.IGNORECASE) and not re.search(r"-\d+$", base):
        out.append(f"{base}-i{ext}")
        out.append(f"{base}-LIST-i{ext}")
        out.extend(f"{base}-AD-{i}-p{ext}" for i in range(1, 4))

    return list(dict.fromkeys(u for u in out if u != url))


def collect_images(record: Dict[str, Any], max_images: int, guess: bool = True) -> List[str]:
    """Stages 1 and 2: record URLs, then guessed siblings, capped at max_images."""
    base = collect_basic_images(record, max_images)
    urls = _OrderedUrls(max_images, base)
    if guess:
        for url in base:
            if urls.full:
                break
            urls.extend(guess_siblings(url))
    return urls.as_list()


# ---------------------------------------------------------------------------
# Stage 3 helpers: FTP directory listing
# ---------------------------------------------------------------------------

def dir_from_image_url(url: Any) -> str:
    """https://host/a/b/FILE.jpg -> https://host/a/b/"""
    if not isinstance(url, str):
        return ""
    idx = url.rfind("/")
    return url[: idx + 1] if idx > 8 else ""


def ftp_dir_from_brand_sku(vendor: str, sku: str, host: str = SYSCOM_FTP_HOST) -> str:
    if not vendor or not sku:
        return ""
    brand = re.sub(r"[^A-Z0-9]", "", str(vendor).upper())
    if not brand:
        return ""
    return f"{host.rstrip('/')}/usuarios/fotos/BancoFotografiasSyscom/{brand}/{quote(str(sku), safe='')}/"


def parse_directory_listing(html: str, base_url: str, limit: int) -> List[str]:
    urls = _OrderedUrls(limit)
    soup = BeautifulSoup(html or "", "html.parser")
    for a in soup.find_all("a", href=True):
        href = a["href"].strip()
        if not href or href.endswith("/"):
            continue
        if not re.search(r"\.(png|jpe?g|webp|gif)$", href, re.IGNORECASE):
            continue
        urls.add(href if href.startswith("http") else urljoin(base_url, href))
        if urls.full:
            break
    return urls.as_list()


def parse_product_page(html: str, limit: int) -> List[str]:
    return list(dict.fromkeys(_SYSCOM_IMAGE_RE.findall(html or "")))[:limit]


# ---------------------------------------------------------------------------
# Full pipeline
# ---------------------------------------------------------------------------

class ImageCollector:
    """Runs every discovery stage enabled in ImageConfig for one record."""

    def __init__(self, config: ImageConfig, session: Optional[requests.Session] = None) -> None:
        self.config = config
        self.session = session or requests.Session()

    def _get_text(self, url: str) -> Optional[str]:
        try:
            resp = self.session.get(url, timeout=self.config.timeout)
        except requests.RequestException as exc:
            logger.debug("GET %s failed: %s", url, exc)
            return None
        if resp.status_code != 200:
            logger.debug("GET %s returned HTTP %s", url, resp.status_code)
            return None
        return resp.text

    def list_directory_images(self, dir_url: str) -> List[str]:
        if not dir_url:
            return []
        html = self._get_text(dir_url)
        if html is None:
            return []
        found = parse_directory_listing(html, dir_url, self.config.max_images)
        logger.debug("Directory scan %s -> %d files", dir_url, len(found))
        return found

    def candidate_dirs(self, record: Dict[str, Any], known: List[str]) -> List[str]:
        known_url = (known[0] if known else None) or record.get("img_portada") or record.get("imagen")
        dirs: List[str] = []
        known_dir = dir_from_image_url(known_url)
        if known_dir:
            dirs.append(known_dir)

        host = self.config.ftp_host
        if isinstance(known_url, str) and known_url.startswith("http"):
            host = "/".join(known_url.split("/")[:3])
        built = ftp_dir_from_brand_sku(extract_vendor(record), extract_sku(record) or "", host)
        if built and built not in dirs:
            dirs.append(built)
        return dirs

    def images_from_directories(self, record: Dict[str, Any], collected: List[str]) -> List[str]:
        urls = _OrderedUrls(self.config.max_images, collected)
        for dir_url in self.candidate_dirs(record, collected):
            if urls.full:
                break
            urls.extend(self.list_directory_images(dir_url))
        return urls.as_list()

    def scrape_product_page(self, record: Dict[str, Any]) -> List[str]:
        page_url = record.get("link") or record.get("url")
        if not isinstance(page_url, str) or not page_url:
            return []
        html = self._get_text(page_url)
        if html is None:
            return []
        found = parse_product_page(html, self.config.max_images)
        logger.debug("Page scrape %s -> %d files", page_url, len(found))
        return found

    def exists(self, url: str) -> bool:
        try:
            resp = self.session.head(url, allow_redirects=True, timeout=self.config.timeout)
        except requests.RequestException as exc:
            logger.debug("HEAD %s failed: %s", url, exc)
            return False
        return resp.status_code < 400

    def collect(self, record: Dict[str, Any]) -> List[str]:
        cfg = self.config
        if cfg.max_images <= 0:
            return []

        base = collect_basic_images(record, cfg.max_images)
        images = collect_images(record, cfg.max_images, guess=cfg.guess_siblings)

        if cfg.dir_scan and len(images) < cfg.max_images:
            images = self.images_from_directories(record, images)

        if cfg.scrape_html and len(images) < min(cfg.scrape_threshold, cfg.max_images):
            urls = _OrderedUrls(cfg.max_images, images)
            urls.extend(self.scrape_product_page(record))
            images = urls.as_list()

        if cfg.validate and images:
            valid = [u for u in images if self.exists(u)]
            if not valid:
                logger.debug("No image survived validation; keeping %d record URLs", len(base))
            images = valid or base

        return images[: cfg.max_images]
