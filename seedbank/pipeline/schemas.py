#!/usr/bin/env python3
"""
schemas.py
----------
Schema validation for raw seed records.

Turns one decoded JSON object into a typed, immutable record or a
RecordValidationError carrying the offending field path. Pure: no I/O, no
database, no logging.

Scraped dumps name the same attribute differently from file to file, so
every logical field has an explicit, ordered tuple of candidate keys. The
single resolver ``first_present`` walks that tuple and the first non-empty
value wins.

Records:
    - UserRecord: natural key = lower-cased email
    - ComicRecord: natural key = slug
    - ChapterRecord: natural key = (comic slug, chapter number)

Usage:
    record, error = validate(raw, RecordKind.COMIC)
    if error:
        reporter.record_skip(...)
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

# --- Local imports ---
from seedbank.core.exceptions import RecordValidationError, ValidationError
from seedbank.core.validators import PLACEHOLDER_NAMES, DataValidator
from seedbank.database.models.enums import ComicStatus, UserRole
from seedbank.utils.slugify import slugify
from .models import RecordKind

# =============================================================================
# Field aliases (first non-empty wins)
# =============================================================================

USER_FIELDS: Dict[str, Tuple[str, ...]] = {
    "email": ("email", "emailAddress", "email_address"),
    "name": ("name", "username", "displayName", "display_name"),
    "image": ("image", "avatar", "avatarUrl", "avatar_url"),
    "role": ("role",),
    "password": ("password",),
    "email_verified": ("emailVerified", "email_verified"),
    "status": ("status", "active"),
}

COMIC_FIELDS: Dict[str, Tuple[str, ...]] = {
    "title": ("title", "name", "comictitle"),
    "slug": ("slug", "comicslug"),
    "description": ("description", "synopsis", "summary"),
    "cover": ("coverImage", "cover_image", "cover"),
    "status": ("status",),
    "rating": ("rating", "score"),
    "serialization": ("serialization",),
    "url": ("url",),
    "author": ("author",),
    "artist": ("artist",),
    "type": ("type", "category"),
    "genres": ("genres", "tags"),
    "publication_date": ("publicationDate", "updatedAt", "updated_at"),
}

CHAPTER_FIELDS: Dict[str, Tuple[str, ...]] = {
    "comic_slug": ("comicslug", "comicSlug", "comic.slug"),
    "title": ("title", "chaptertitle", "chaptername", "name"),
    "slug": ("chapterslug", "slug"),
    "number": ("chapterNumber", "chapter_number", "number"),
    "release_date": ("releaseDate", "release_date", "updatedAt", "updated_at"),
    "views": ("views",),
    "url": ("url",),
}

IMAGE_LIST_FIELDS: Tuple[str, ...] = ("images", "image_urls")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# "Chapter 12", "Ch. 12", "Episode 12.5", "chapter-12"
_CHAPTER_LABEL_RE = re.compile(
    r"\b(?:chapter|chap|ch|episode|ep)[\s._-]*#?\s*(\d+(?:\.\d+)?)", re.IGNORECASE
)
# "12. The Return", "12 - The Return", "12"
_LEADING_NUMBER_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(?:[.:\-–—]|$)")


# =============================================================================
# Records
# =============================================================================


@dataclass(frozen=True)
class UserRecord:
    """A validated user."""

    email: str
    name: str
    role: UserRole = UserRole.USER
    image_url: Optional[str] = None
    password: Optional[str] = None
    email_verified: Optional[datetime] = None
    status: bool = True

    kind = RecordKind.USER

    @property
    def natural_key(self) -> str:
        return self.email

    @property
    def key_text(self) -> str:
        return self.email


@dataclass(frozen=True)
class ComicRecord:
    """A validated comic; reference fields hold raw names, not ids."""

    title: str
    slug: str
    description: Optional[str] = None
    status: ComicStatus = ComicStatus.ONGOING
    rating: float = 0.0
    serialization: Optional[str] = None
    url: Optional[str] = None
    cover_url: Optional[str] = None
    image_urls: Tuple[str, ...] = ()
    author: Optional[str] = None
    artist: Optional[str] = None
    type_name: Optional[str] = None
    genres: Tuple[str, ...] = ()
    publication_date: Optional[datetime] = None

    kind = RecordKind.COMIC

    @property
    def natural_key(self) -> str:
        return self.slug

    @property
    def key_text(self) -> str:
        return self.slug


@dataclass(frozen=True)
class ChapterRecord:
    """A validated chapter, keyed by its comic's slug and its number."""

    comic_slug: str
    chapter_number: float
    title: str
    slug: str
    release_date: Optional[datetime] = None
    views: int = 0
    url: Optional[str] = None
    image_urls: Tuple[str, ...] = ()

    kind = RecordKind.CHAPTER

    @property
    def natural_key(self) -> Tuple[str, float]:
        return (self.comic_slug, self.chapter_number)

    @property
    def key_text(self) -> str:
        return f"{self.comic_slug}#{format_number(self.chapter_number)}"


ValidatedRecord = Union[UserRecord, ComicRecord, ChapterRecord]


# =============================================================================
# Field resolution helpers
# =============================================================================


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def _lookup(raw: Mapping[str, Any], path: str) -> Any:
    current: Any = raw
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def first_present(
    raw: Mapping[str, Any], candidates: Sequence[str]
) -> Tuple[Optional[str], Any]:
    """
    Resolve a logical field from its ordered candidate keys.

    Candidates may be dotted paths into nested objects ("comic.slug").

    Args:
        raw: Raw record
        candidates: Candidate keys, highest precedence first

    Returns:
        Tuple of (key that matched, value), or (None, None)

    Examples:
        >>> first_present({"name": "", "title": "Solo"}, ("name", "title"))
        ('title', 'Solo')
    """
    for key in candidates:
        value = _lookup(raw, key)
        if not _is_empty(value):
            return key, value
    return None, None


def format_number(number: float) -> str:
    """
    Render a chapter number without a trailing ".0".

    Examples:
        >>> format_number(12.0)
        '12'
        >>> format_number(12.5)
        '12.5'
    """
    return str(int(number)) if float(number).is_integer() else str(number)


def extract_chapter_number(text: Optional[str]) -> Optional[float]:
    """
    Pull a chapter number out of a title, name or slug.

    Examples:
        >>> extract_chapter_number("Chapter 12: The Return")
        12.0
        >>> extract_chapter_number("Ep. 3")
        3.0
        >>> extract_chapter_number("12 - The Return")
        12.0
        >>> extract_chapter_number("The Return") is None
        True
    """
    if not text:
        return None
    match = _CHAPTER_LABEL_RE.search(text) or _LEADING_NUMBER_RE.match(text)
    if not match:
        return None
    number = float(match.group(1))
    return number if math.isfinite(number) else None


def _string(raw: Mapping[str, Any], candidates: Sequence[str], field: str) -> Optional[str]:
    key, value = first_present(raw, candidates)
    if key is None:
        return None
    if isinstance(value, (dict, list, tuple)):
        raise RecordValidationError(key, f"expected text for {field}, got {type(value).__name__}")
    return DataValidator.normalize_string(value)


def _required_string(raw: Mapping[str, Any], candidates: Sequence[str], field: str) -> str:
    value = _string(raw, candidates, field)
    if not value:
        raise RecordValidationError(candidates[0], f"missing required field '{field}'")
    return value


def _number(raw: Mapping[str, Any], candidates: Sequence[str]) -> Tuple[Optional[str], Optional[float]]:
    key, value = first_present(raw, candidates)
    if key is None:
        return None, None
    if isinstance(value, str) and DataValidator.normalize_key(value) in PLACEHOLDER_NAMES:
        return key, None
    try:
        return key, DataValidator.normalize_float(value)
    except ValidationError as e:
        raise RecordValidationError(key, str(e)) from e


def _integer(raw: Mapping[str, Any], candidates: Sequence[str]) -> Optional[int]:
    key, value = first_present(raw, candidates)
    if key is None:
        return None
    if isinstance(value, str) and DataValidator.normalize_key(value) in PLACEHOLDER_NAMES:
        return None
    try:
        return DataValidator.normalize_int(value)
    except ValidationError as e:
        raise RecordValidationError(key, str(e)) from e


def _reference_name(raw: Mapping[str, Any], candidates: Sequence[str]) -> Optional[str]:
    key, value = first_present(raw, candidates)
    if key is None:
        return None
    if isinstance(value, Mapping):
        value = value.get("name")
    if value is not None and not isinstance(value, (str, int, float)):
        raise RecordValidationError(key, "expected a name or an object with 'name'")
    return DataValidator.normalize_string(value)


def _reference_names(raw: Mapping[str, Any], candidates: Sequence[str]) -> Tuple[str, ...]:
    key, value = first_present(raw, candidates)
    if key is None:
        return ()
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        raise RecordValidationError(key, "expected a list of names")

    names: List[str] = []
    for index, item in enumerate(value):
        if isinstance(item, Mapping):
            item = item.get("name")
        if item is None:
            continue
        if not isinstance(item, str):
            raise RecordValidationError(f"{key}[{index}]", "expected a name or an object with 'name'")
        name = DataValidator.normalize_string(item)
        if name:
            names.append(name)
    return tuple(dict.fromkeys(names))


def extract_image_urls(raw: Mapping[str, Any]) -> Tuple[str, ...]:
    """
    Ordered, de-duplicated image URLs of a record.

    ``images`` may hold objects with a ``url`` key or bare strings;
    ``image_urls`` holds strings. The first non-empty list wins.

    Raises:
        RecordValidationError: On entries that are neither
    """
    key, value = first_present(raw, IMAGE_LIST_FIELDS)
    if key is None:
        return ()
    if not isinstance(value, (list, tuple)):
        raise RecordValidationError(key, "expected a list of images")

    urls: List[str] = []
    for index, item in enumerate(value):
        if isinstance(item, Mapping):
            item = item.get("url")
            if item is None:
                raise RecordValidationError(f"{key}[{index}].url", "missing image url")
        if not isinstance(item, str):
            raise RecordValidationError(f"{key}[{index}]", "expected an image url string")
        url = item.strip()
        if url:
            urls.append(url)
    return tuple(dict.fromkeys(urls))


# =============================================================================
# Per-kind validation
# =============================================================================


def validate_user(raw: Mapping[str, Any]) -> UserRecord:
    """
    Validate a raw user.

    Raises:
        RecordValidationError: On missing/invalid email or malformed fields
    """
    email = _required_string(raw, USER_FIELDS["email"], "email").lower()
    if not _EMAIL_RE.match(email):
        raise RecordValidationError("email", "not a valid email address")

    name = _string(raw, USER_FIELDS["name"], "name") or email.split("@", 1)[0]

    role_text = (_string(raw, USER_FIELDS["role"], "role") or UserRole.USER.value).lower()
    if role_text not in UserRole.choices():
        raise RecordValidationError("role", f"expected one of {UserRole.choices()}")

    key, status_value = first_present(raw, USER_FIELDS["status"])
    try:
        status = DataValidator.normalize_bool(status_value)
    except ValidationError as e:
        raise RecordValidationError(key or "status", str(e)) from e

    _, verified = first_present(raw, USER_FIELDS["email_verified"])

    return UserRecord(
        email=email,
        name=name,
        role=UserRole(role_text),
        image_url=_string(raw, USER_FIELDS["image"], "image"),
        password=_string(raw, USER_FIELDS["password"], "password"),
        email_verified=DataValidator.parse_datetime(verified),
        status=True if status is None else status,
    )


def validate_comic(raw: Mapping[str, Any]) -> ComicRecord:
    """
    Validate a raw comic.

    The slug is derived from the title when absent. Unknown statuses become
    Ongoing and ratings are clamped to 0..10.

    Raises:
        RecordValidationError: On a missing title or malformed fields
    """
    title = _required_string(raw, COMIC_FIELDS["title"], "title")
    slug = _string(raw, COMIC_FIELDS["slug"], "slug") or slugify(title)
    if not slug:
        raise RecordValidationError("slug", f"cannot derive a slug from title {title!r}")

    _, rating = _number(raw, COMIC_FIELDS["rating"])
    rating = min(10.0, max(0.0, rating or 0.0))

    image_urls = extract_image_urls(raw)
    cover = _string(raw, COMIC_FIELDS["cover"], "cover") or (image_urls[0] if image_urls else None)

    _, published = first_present(raw, COMIC_FIELDS["publication_date"])

    return ComicRecord(
        title=title,
        slug=slug,
        description=_string(raw, COMIC_FIELDS["description"], "description"),
        status=ComicStatus.from_raw(_string(raw, COMIC_FIELDS["status"], "status")),
        rating=rating,
        serialization=_string(raw, COMIC_FIELDS["serialization"], "serialization"),
        url=_string(raw, COMIC_FIELDS["url"], "url"),
        cover_url=cover,
        image_urls=image_urls,
        author=_reference_name(raw, COMIC_FIELDS["author"]),
        artist=_reference_name(raw, COMIC_FIELDS["artist"]),
        type_name=_reference_name(raw, COMIC_FIELDS["type"]),
        genres=_reference_names(raw, COMIC_FIELDS["genres"]),
        publication_date=DataValidator.normalize_datetime(published),
    )


def validate_chapter(raw: Mapping[str, Any]) -> ChapterRecord:
    """
    Validate a raw chapter.

    Chapter number precedence: explicit numeric field, then a number
    extracted from the title/name or slug, else the record is rejected.

    Raises:
        RecordValidationError: On a missing comic slug or chapter number
    """
    comic_slug = _required_string(raw, CHAPTER_FIELDS["comic_slug"], "comic slug")

    title = _string(raw, CHAPTER_FIELDS["title"], "title")
    slug = _string(raw, CHAPTER_FIELDS["slug"], "slug")

    number_key, number = _number(raw, CHAPTER_FIELDS["number"])
    if number is None:
        for text in (title, _string(raw, ("name", "chaptername"), "name"), slug):
            number = extract_chapter_number(text)
            if number is not None:
                break
    if number is None:
        raise RecordValidationError(
            number_key or CHAPTER_FIELDS["number"][0],
            "no chapter number given and none found in the title",
        )
    if number < 0:
        raise RecordValidationError(number_key or "chapterNumber", "chapter number cannot be negative")

    label = format_number(number)
    title = title or f"Chapter {label}"
    slug = slug or slugify(title) or f"chapter-{label}"

    _, released = first_present(raw, CHAPTER_FIELDS["release_date"])
    views = _integer(raw, CHAPTER_FIELDS["views"])

    return ChapterRecord(
        comic_slug=comic_slug,
        chapter_number=number,
        title=title,
        slug=slug,
        release_date=DataValidator.normalize_datetime(released),
        views=max(0, views or 0),
        url=_string(raw, CHAPTER_FIELDS["url"], "url"),
        image_urls=extract_image_urls(raw),
    )


_VALIDATORS = {
    RecordKind.USER: validate_user,
    RecordKind.COMIC: validate_comic,
    RecordKind.CHAPTER: validate_chapter,
}


def validate(
    raw: Any, kind: Union[RecordKind, str]
) -> Tuple[Optional[ValidatedRecord], Optional[RecordValidationError]]:
    """
    Validate one raw record.

    Args:
        raw: Decoded JSON value
        kind: Record kind

    Returns:
        (record, None) on success, (None, error) on failure
    """
    kind = RecordKind(kind)
    if not isinstance(raw, Mapping):
        return None, RecordValidationError("<record>", "expected a JSON object", kind.value)
    try:
        return _VALIDATORS[kind](raw), None
    except RecordValidationError as e:
        e.kind = kind.value
        return None, e


def describe_raw(raw: Any, kind: Union[RecordKind, str]) -> str:
    """
    Best-effort key of a raw record for error summaries.

    Examples:
        >>> describe_raw({"slug": "solo-leveling"}, "comic")
        'solo-leveling'
    """
    if not isinstance(raw, Mapping):
        return "<invalid>"
    kind = RecordKind(kind)
    if kind is RecordKind.USER:
        _, value = first_present(raw, USER_FIELDS["email"])
    elif kind is RecordKind.COMIC:
        _, value = first_present(raw, COMIC_FIELDS["slug"] + COMIC_FIELDS["title"])
    else:
        _, comic = first_present(raw, CHAPTER_FIELDS["comic_slug"])
        _, label = first_present(raw, CHAPTER_FIELDS["number"] + CHAPTER_FIELDS["title"])
        value = f"{comic}#{label}" if comic or label else None
    return str(value) if value is not None else "<unknown>"
