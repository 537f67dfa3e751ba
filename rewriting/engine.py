"""
FILE DESCRIPTION: Link rewriting for captured pages and stylesheets.
Every same-origin reference is mapped through the path normalizer and rooted under the snapshot prefix.
Pure string transforms: nothing here fetches or touches the disk, and rewriting its own output is a no-op.
KEY FUNCTIONS/CLASSES: rewrite_url, rewrite_srcset, rewrite_css, rewrite_html
"""

import re
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from crawler.core import logger
from crawler.normalizer import normalize_path_for_disk, to_href
from crawler.policy import URLPolicy

# Reference-bearing attributes per tag
URL_ATTRIBUTES = {
    "a": ("href",),
    "area": ("href",),
    "link": ("href",),
    "img": ("src",),
    "script": ("src",),
    "source": ("src",),
    "iframe": ("src",),
    "embed": ("src",),
    "track": ("src",),
    "input": ("src",),
    "audio": ("src",),
    "video": ("src", "poster"),
}
SRCSET_TAGS = ("img", "source")

# Quoted targets may contain spaces, bare ones may not
CSS_URL_RE = re.compile(r"""url\((\s*)(?:(['"])(.+?)\2|([^'"()\s]+))(\s*)\)""", re.IGNORECASE)


def _with_slash(prefix):
    return prefix if prefix.endswith("/") else prefix + "/"


def rewrite_url(ref, page_url, prefix):
    """
    Map one reference found on page_url to its place inside the snapshot.
    Returns the reference untouched when it is a fragment, already rooted under
    the prefix, not http(s), or points at another origin.
    """
    if not ref:
        return ref
    candidate = ref.strip()
    if not candidate or candidate.startswith("#"):
        return ref
    prefix = _with_slash(prefix)
    if candidate.startswith(prefix):
        return ref

    try:
        absolute = urljoin(page_url, candidate)
        parsed = urlparse(absolute)
    except ValueError:
        return ref
    if parsed.scheme not in ("http", "https"):
        return ref
    if not URLPolicy.is_same_origin(absolute, page_url):
        return ref

    # Relative spellings of an already-rewritten path
    prefix_path = urlparse(prefix).path or prefix
    if parsed.path.startswith(prefix_path):
        return ref

    local = prefix + to_href(normalize_path_for_disk(absolute))
    if parsed.fragment:
        local += "#" + parsed.fragment
    return local


def rewrite_srcset(srcset, page_url, prefix):
    # data: URIs carry commas of their own
    if not srcset or "data:" in srcset:
        return srcset
    entries = []
    for entry in srcset.split(","):
        parts = entry.strip().split(None, 1)
        if not parts:
            continue
        parts[0] = rewrite_url(parts[0], page_url, prefix)
        entries.append(" ".join(parts))
    return ", ".join(entries)


def rewrite_css(css, base_url, prefix):
    """Rewrite url(...) references in stylesheet text, keeping the original quoting."""
    if not css:
        return css

    def _replace(match):
        lead, quote, quoted, bare, trail = match.groups()
        quote = quote or ""
        target = quoted if quoted is not None else bare
        return f"url({lead}{quote}{rewrite_url(target, base_url, prefix)}{quote}{trail})"

    return CSS_URL_RE.sub(_replace, css)


def rewrite_html(html, page_url, prefix):
    """
    FLOW: Parses HTML with BeautifulSoup -> rewrites URL attributes, srcset lists,
    inline style attributes and <style> blocks -> serializes the document back to text.
    """
    soup = BeautifulSoup(html, "html.parser")
    changed = 0

    for tag in soup.find_all(True):
        for attr in URL_ATTRIBUTES.get(tag.name, ()):
            value = tag.get(attr)
            if isinstance(value, str):
                new_value = rewrite_url(value, page_url, prefix)
                if new_value != value:
                    tag[attr] = new_value
                    changed += 1

        if tag.name in SRCSET_TAGS and isinstance(tag.get("srcset"), str):
            new_srcset = rewrite_srcset(tag["srcset"], page_url, prefix)
            if new_srcset != tag["srcset"]:
                tag["srcset"] = new_srcset
                changed += 1

        style = tag.get("style")
        if isinstance(style, str):
            new_style = rewrite_css(style, page_url, prefix)
            if new_style != style:
                tag["style"] = new_style
                changed += 1

    for block in soup.find_all("style"):
        text = block.string
        if text:
            new_text = rewrite_css(str(text), page_url, prefix)
            if new_text != str(text):
                # Keep the Stylesheet string type so the CSS is not entity-escaped
                text.replace_with(type(text)(new_text))
                changed += 1

    logger.debug(f"[REWRITE] {page_url}: {changed} references rewritten")
    return str(soup)
