# cookie_utils.py
from pathlib import Path
from typing import Dict, Iterable, List, Optional
import time

# Pre-accepted consent so EU-routed requests skip the consent interstitial
CONSENT_COOKIE = "CONSENT=YES+yt.453767867.en+FP+XXXXXXXXXX"


def parse_netscape_cookies_txt(raw: str) -> List[dict]:
    """
    Return a list of rows with keys:
    domain, include_subdomains, path, secure, expires, name, value
    """
    rows = []
    for line in raw.splitlines():
        line = line.strip()
        # "#HttpOnly_" prefixed lines are real cookies, other "#" lines are comments
        if line.startswith("#HttpOnly_"):
            line = line[len("#HttpOnly_"):]
        elif not line or line.startswith("#"):
            continue
        parts = line.split("\t")
        if len(parts) != 7:
            continue
        domain, include_sub, path, secure, expires, name, value = parts
        rows.append({
            "domain": domain,
            "include_subdomains": include_sub.upper() == "TRUE",
            "path": path or "/",
            "secure": secure.upper() == "TRUE",
            "expires": int(expires) if expires.isdigit() else 0,
            "name": name,
            "value": value,
        })
    return rows


def rows_to_cookie_header(rows: Iterable[dict], domain_suffix: str = "youtube.com") -> Optional[str]:
    """Build a Cookie header from unexpired rows scoped to domain_suffix."""
    now = int(time.time())
    pairs = []
    for r in rows:
        if r["expires"] and r["expires"] < now:
            continue
        if not r["domain"].lstrip(".").endswith(domain_suffix):
            continue
        pairs.append(f"{r['name']}={r['value']}")
    return "; ".join(pairs) or None


def cookie_header_from_netscape_file(path: Path) -> Optional[str]:
    """Read a cookies.txt export and return it as a Cookie header value."""
    return rows_to_cookie_header(parse_netscape_cookies_txt(path.read_text(encoding="utf-8")))


def parse_cookie_header(header: Optional[str]) -> Dict[str, str]:
    cookies = {}
    if not header:
        return cookies
    for part in header.split(";"):
        name, sep, value = part.strip().partition("=")
        if sep and name:
            cookies[name] = value
    return cookies


def merge_cookie_headers(*headers: Optional[str]) -> Optional[str]:
    """Merge Cookie header values; later headers win on name collisions."""
    merged: Dict[str, str] = {}
    for header in headers:
        merged.update(parse_cookie_header(header))
    return "; ".join(f"{name}={value}" for name, value in merged.items()) or None


def set_cookie_pairs(set_cookie_values: Iterable[str]) -> Optional[str]:
    """Reduce Set-Cookie response headers to name=value pairs for replay."""
    pairs = []
    for value in set_cookie_values:
        pair = value.split(";", 1)[0].strip()
        if "=" in pair:
            pairs.append(pair)
    return "; ".join(pairs) or None
