"""
Profile normalization.

Maps the raw profile returned by a provider client to the canonical Identity.
Providers populate different subsets of fields depending on API version and
granted scopes, so every field is described by an ordered list of extraction
paths; the first path that yields a non-empty value wins.

Normalization is pure and total: malformed or partial profiles produce absent
fields, never an exception.
"""

from typing import Any, Mapping, Optional, Sequence, Union
from urllib.parse import urlsplit, urlunsplit

from ..models import AuthProviderName, Identity


PathElement = Union[str, int]
Path = tuple[PathElement, ...]

PICTURE_SIZE = "400"

# Order matters: it is part of the contract for each provider.
EXTRACTION_RULES: dict[AuthProviderName, dict[str, Sequence[Path]]] = {
    AuthProviderName.google: {
        "id": [("id",), ("_json", "sub"), ("_json", "id")],
        "name": [("displayName",), ("_json", "name")],
        "email": [("emails", 0, "value")],
        "picture": [
            ("photos", 0, "value"),
            ("_json", "picture"),
            ("_json", "photos", 0, "value"),
            ("_json", "image", "url"),
        ],
    },
    AuthProviderName.github: {
        "id": [("id",), ("_json", "id")],
        "name": [("displayName",), ("username",), ("_json", "name"), ("_json", "login")],
        "email": [("emails", 0, "value"), ("_json", "email")],
        "picture": [("photos", 0, "value"), ("_json", "avatar_url")],
    },
    AuthProviderName.local: {
        "id": [("id",)],
        "name": [("name",)],
        "email": [("email",)],
        "picture": [("picture",)],
    },
}

# Query parameter controlling avatar resolution, for providers that have one.
PICTURE_SIZE_PARAMS: dict[AuthProviderName, str] = {
    AuthProviderName.google: "sz",
}


def _resolve(payload: Any, path: Path) -> Any:
    current = payload
    for element in path:
        if isinstance(element, int):
            if not isinstance(current, (list, tuple)) or not -len(current) <= element < len(current):
                return None
            current = current[element]
        else:
            if not isinstance(current, Mapping):
                return None
            current = current.get(element)
        if current is None:
            return None
    return current


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict)) and len(value) == 0:
        return True
    return False


def extract_first(payload: Any, paths: Sequence[Path]) -> Optional[Any]:
    """Return the first non-empty value found along ``paths``."""
    for path in paths:
        value = _resolve(payload, path)
        if not _is_empty(value):
            return value
    return None


def _as_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, tuple)):
        return None
    # bool is an int subclass; neither makes sense as a profile string.
    if isinstance(value, bool):
        return None
    return str(value)


def rewrite_size_param(url: str, param: str, size: str = PICTURE_SIZE) -> str:
    """Force the size query parameter of ``url`` to ``size``.

    Other query components keep their original text and order. A value that is
    not an absolute URL is returned unchanged.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme or not parts.netloc:
        return url

    replaced = False
    components = []
    for component in parts.query.split("&") if parts.query else []:
        key = component.split("=", 1)[0]
        if key == param:
            if replaced:
                continue
            component = f"{param}={size}"
            replaced = True
        components.append(component)
    if not replaced:
        components.append(f"{param}={size}")

    return urlunsplit((parts.scheme, parts.netloc, parts.path, "&".join(components), parts.fragment))


def normalize(provider: Union[AuthProviderName, str], raw_profile: Any) -> Identity:
    """Build the canonical Identity for ``raw_profile`` from ``provider``.

    Any ``raw_profile`` is accepted. ``provider`` must name a known
    provider; it comes from the routing table, not from the profile.

    Raises:
        ValueError: If ``provider`` is not an AuthProviderName value
    """
    provider = AuthProviderName(provider)
    rules = EXTRACTION_RULES[provider]

    user_id = _as_text(extract_first(raw_profile, rules["id"])) or ""
    name = _as_text(extract_first(raw_profile, rules["name"])) or ""
    email = _as_text(extract_first(raw_profile, rules["email"]))
    picture = _as_text(extract_first(raw_profile, rules["picture"]))

    size_param = PICTURE_SIZE_PARAMS.get(provider)
    if picture and size_param:
        picture = rewrite_size_param(picture, size_param)

    return Identity(
        id=user_id,
        name=name,
        email=email,
        picture=picture,
        provider=provider,
    )
