"""Parse stock-site links into a canonical (site, id) pair."""
import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from ledger.exceptions import InvalidRequestError
from ledger.schemas.error import ErrorCode


@dataclass(frozen=True)
class ParsedStockUrl:
    """Canonical identity of a stock asset."""

    site: str
    id: str
    hostname: str
    normalized_url: str


# Ordered from most to least specific within each site
STOCK_URL_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("vshutter", re.compile(r"shutterstock\.com/(?:[a-z-]+/)?video/clip-([0-9]+)", re.I)),
    ("mshutter", re.compile(r"shutterstock\.com/(?:[a-z-]+/)?music/track-([0-9]+)", re.I)),
    (
        "shutterstock",
        re.compile(
            r"shutterstock\.com/(?:[a-z-]+/)?"
            r"(?:image-vector|image-photo|image-illustration|image|image-generated|editorial)/.+?-([0-9]+)",
            re.I,
        ),
    ),
    (
        "shutterstock",
        re.compile(
            r"shutterstock\.com/(?:[a-z-]+/)?"
            r"(?:image-vector|image-photo|image-illustration|image|image-generated|editorial)/([0-9]+)",
            re.I,
        ),
    ),
    ("adobestock_v4k", re.compile(r"stock\.adobe\.com/(?:[a-z-]+/)*video/[a-zA-Z0-9-]+/([0-9]+)", re.I)),
    (
        "adobestock",
        re.compile(
            r"stock\.adobe\.com/(?:[a-z-]+/)*(?:images|templates|3d-assets|stock-photo)/[a-zA-Z0-9-]+/([0-9]+)",
            re.I,
        ),
    ),
    ("adobestock", re.compile(r"stock\.adobe\.com/[a-z-]+/asset_id=([0-9]+)", re.I)),
    ("adobestock", re.compile(r"stock\.adobe\.com/(?:[a-z-]+/)*([0-9]+)", re.I)),
    ("depositphotos_video", re.compile(r"depositphotos\.com/([0-9]+)/stock-video", re.I)),
    ("depositphotos", re.compile(r"depositphotos\.com/(?:[a-z-]+/)*[a-z-]+-([0-9]+)", re.I)),
    ("depositphotos", re.compile(r"depositphotos\.com/([0-9]+)/stock-(?:photo|illustration)", re.I)),
    ("123rf", re.compile(r"123rf\.com/(?:photo|free-photo)_([0-9]+)", re.I)),
    ("123rf", re.compile(r"123rf\.com/stock-photo/([0-9]+)\.html", re.I)),
    ("istockphoto", re.compile(r"istockphoto\.com/(?:[a-z-]+/)*[a-zA-Z0-9-]+-gm([0-9]+)-", re.I)),
    ("gettyimages", re.compile(r"gettyimages\.com/detail/(?:[a-z-]+/)+([0-9]+)", re.I)),
    ("vfreepik", re.compile(r"freepik\.com/video/[a-z-]+_([0-9]+)\.htm", re.I)),
    ("freepik", re.compile(r"freepik\.com/(?:[a-z-]+/)*[a-z-]+_([0-9]+)\.htm", re.I)),
    ("flaticon", re.compile(r"flaticon\.com/(?:[a-z-]+/)*[a-z-]+_([0-9]+)", re.I)),
    ("envato", re.compile(r"elements\.envato\.com/(?:[a-z-]+/)+.+?-([A-Z0-9]+)", re.I)),
    ("dreamstime", re.compile(r"dreamstime\.com/.*?image([0-9]+)", re.I)),
    ("vectorstock", re.compile(r"vectorstock\.com/[a-z-]+/[a-z-]+-([0-9]+)", re.I)),
    ("motionarray", re.compile(r"motionarray\.com/[a-zA-Z0-9-]+/[a-zA-Z0-9-]+-([0-9]+)", re.I)),
    ("alamy", re.compile(r"alamy\.com/.+?-([A-Z0-9]+)\.html", re.I)),
    ("storyblocks", re.compile(r"storyblocks\.com/(?:video|images|audio)/stock/[0-9a-z-]*?-([0-9a-z_]+)", re.I)),
    ("vecteezy", re.compile(r"vecteezy\.com/(?:[a-z-]+/)*[a-z-]+-([0-9]+)", re.I)),
]

# Site keys a link can resolve to
SUPPORTED_SITES = frozenset(site for site, _ in STOCK_URL_PATTERNS)

ALLOWED_STOCK_HOSTS = frozenset(
    {
        "shutterstock.com",
        "stock.adobe.com",
        "depositphotos.com",
        "123rf.com",
        "istockphoto.com",
        "gettyimages.com",
        "freepik.com",
        "flaticon.com",
        "elements.envato.com",
        "dreamstime.com",
        "vectorstock.com",
        "motionarray.com",
        "alamy.com",
        "storyblocks.com",
        "vecteezy.com",
    }
)


def is_allowed_host(hostname: str) -> bool:
    """Return True for supported stock sites, with or without ``www.``."""
    hostname = hostname.lower()
    if hostname.startswith("www."):
        hostname = hostname[4:]
    return hostname in ALLOWED_STOCK_HOSTS


def parse_stock_url(source_url: str) -> ParsedStockUrl:
    """
    Extract the canonical site key and asset id from a stock-site link.

    Links without a scheme are treated as https.

    Args:
        source_url: Link pasted by the user

    Returns:
        ParsedStockUrl

    Raises:
        InvalidRequestError: If the link is empty, from an unsupported host,
            or carries no recognizable asset id
    """
    trimmed = (source_url or "").strip()
    if not trimmed:
        raise InvalidRequestError("URL cannot be empty.", code=ErrorCode.UNSUPPORTED_SOURCE)

    if "://" not in trimmed:
        trimmed = f"https://{trimmed}"

    parts = urlsplit(trimmed)
    hostname = (parts.hostname or "").lower()
    if not is_allowed_host(hostname):
        raise InvalidRequestError(
            "This provider is not supported. Please supply a URL from an approved stock site.",
            code=ErrorCode.UNSUPPORTED_SOURCE,
        )

    for site, pattern in STOCK_URL_PATTERNS:
        match = pattern.search(trimmed)
        if match and match.group(1):
            return ParsedStockUrl(site=site, id=match.group(1), hostname=hostname, normalized_url=trimmed)

    raise InvalidRequestError(
        "Could not parse the stock media ID from the URL or the site is not supported.",
        code=ErrorCode.UNSUPPORTED_SOURCE,
    )
