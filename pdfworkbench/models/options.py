"""Per-tool processing options.

Every tool gets its own dataclass. Options are validated when they are built,
so the assembler never sees an invalid combination. ``from_dict`` accepts the
JSON sent by the browser, where keys may be camelCase (``equalParts``) or
snake_case (``equal_parts``).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import InvalidOptions
from .pdf_document import PageKey


class SplitMode(Enum):
    PAGES = "pages"
    RANGE = "range"
    SIZE = "size"


class MergeMode(Enum):
    SEQUENTIAL = "sequential"
    INTERLEAVE = "interleave"
    CUSTOM = "custom"


class CompressionLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EXTREME = "extreme"


class ImageFormat(Enum):
    PNG = "png"
    JPEG = "jpeg"
    WEBP = "webp"


class ColorMode(Enum):
    COLOR = "color"
    GRAYSCALE = "grayscale"
    MONOCHROME = "monochrome"


class SortOrder(Enum):
    CUSTOM = "custom"
    REVERSE = "reverse"
    ODD = "odd"
    EVEN = "even"


WATERMARK_POSITIONS = ("center", "diagonal", "top-left", "top-right", "bottom-left", "bottom-right")
WATERMARK_COLORS = ("gray", "red", "blue", "green", "black")
PAGE_NUMBER_POSITIONS = (
    "top-left", "top-center", "top-right",
    "bottom-left", "bottom-center", "bottom-right",
)

MAX_EQUAL_PARTS = 100
MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_LENGTH = 32


def _pick(payload: Dict[str, Any], snake: str, camel: Optional[str] = None, default: Any = None) -> Any:
    if snake in payload and payload[snake] is not None:
        return payload[snake]
    if camel and camel in payload and payload[camel] is not None:
        return payload[camel]
    return default


def _enum(enum_cls, value: Any, label: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InvalidOptions(f"Invalid {label} '{value}'. Expected one of: {allowed}")


def _int(value: Any, label: str) -> int:
    if isinstance(value, bool):
        raise InvalidOptions(f"{label} must be a whole number")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidOptions(f"{label} must be a whole number")


def _int_list(values: Any, label: str) -> List[int]:
    if values is None:
        return []
    if not isinstance(values, (list, tuple)):
        raise InvalidOptions(f"{label} must be a list")
    return [_int(value, label) for value in values]


def _bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _page_key(value: Any) -> PageKey:
    if isinstance(value, PageKey):
        return value
    if isinstance(value, dict):
        try:
            return PageKey.from_dict(value)
        except (TypeError, ValueError) as e:
            raise InvalidOptions(str(e))
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return PageKey(str(value[0]), _int(value[1], "Page number"))
    raise InvalidOptions(f"Invalid page key: {value!r}")


@dataclass
class PageRange:
    start: int
    end: int

    def __post_init__(self):
        if self.start < 1 or self.end < 1:
            raise InvalidOptions("Page ranges must start at page 1 or later")
        if self.end < self.start:
            raise InvalidOptions(f"Invalid page range {self.start}-{self.end}")

    @classmethod
    def from_value(cls, value: Any) -> "PageRange":
        if isinstance(value, PageRange):
            return value
        if isinstance(value, dict):
            start = _pick(value, "start", "from")
            end = _pick(value, "end", "to", start)
            return cls(_int(start, "Range start"), _int(end, "Range end"))
        if isinstance(value, str):
            parts = value.split("-", 1)
            start = _int(parts[0].strip(), "Range start")
            end = _int(parts[1].strip(), "Range end") if len(parts) == 2 else start
            return cls(start, end)
        raise InvalidOptions(f"Invalid page range: {value!r}")

    def to_dict(self) -> Dict[str, int]:
        return {"start": self.start, "end": self.end}


@dataclass
class SplitOptions:
    split_mode: SplitMode = SplitMode.PAGES
    selected_pages: List[int] = field(default_factory=list)
    page_ranges: List[PageRange] = field(default_factory=list)
    equal_parts: Optional[int] = None
    preserve_metadata: bool = True

    def __post_init__(self):
        self.split_mode = _enum(SplitMode, self.split_mode, "split mode")
        if self.split_mode is SplitMode.RANGE and not self.page_ranges:
            raise InvalidOptions("At least one page range is required to split by range")
        if self.split_mode is SplitMode.SIZE:
            if self.equal_parts is None:
                raise InvalidOptions("Number of parts is required to split into equal parts")
            if not 2 <= self.equal_parts <= MAX_EQUAL_PARTS:
                raise InvalidOptions(f"Number of parts must be between 2 and {MAX_EQUAL_PARTS}")

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "SplitOptions":
        payload = payload or {}
        equal_parts = _pick(payload, "equal_parts", "equalParts")
        ranges = _pick(payload, "page_ranges", "pageRanges", [])
        selected = _int_list(_pick(payload, "selected_pages", "selectedPages", []), "Selected page")
        mode = _pick(payload, "split_mode", "splitMode")
        if mode is None:
            # Older clients send only the field for the mode they want
            if selected:
                mode = SplitMode.PAGES
            elif equal_parts is not None:
                mode = SplitMode.SIZE
            elif ranges:
                mode = SplitMode.RANGE
            else:
                mode = SplitMode.PAGES
        return cls(
            split_mode=mode,
            selected_pages=selected,
            page_ranges=[PageRange.from_value(value) for value in ranges],
            equal_parts=_int(equal_parts, "Number of parts") if equal_parts is not None else None,
            preserve_metadata=_bool(_pick(payload, "preserve_metadata", "preserveMetadata", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "split_mode": self.split_mode.value,
            "selected_pages": list(self.selected_pages),
            "page_ranges": [page_range.to_dict() for page_range in self.page_ranges],
            "equal_parts": self.equal_parts,
            "preserve_metadata": self.preserve_metadata,
        }


@dataclass
class MergeOptions:
    merge_mode: MergeMode = MergeMode.SEQUENTIAL
    add_bookmarks: bool = True
    preserve_metadata: bool = True
    custom_order: List[PageKey] = field(default_factory=list)

    def __post_init__(self):
        self.merge_mode = _enum(MergeMode, self.merge_mode, "merge mode")
        if self.merge_mode is MergeMode.CUSTOM and not self.custom_order:
            raise InvalidOptions("Custom merge order requires at least one selected page")

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "MergeOptions":
        payload = payload or {}
        return cls(
            merge_mode=_pick(payload, "merge_mode", "mergeMode", MergeMode.SEQUENTIAL),
            add_bookmarks=_bool(_pick(payload, "add_bookmarks", "addBookmarks", True)),
            preserve_metadata=_bool(_pick(payload, "preserve_metadata", "preserveMetadata", True)),
            custom_order=[_page_key(value) for value in _pick(payload, "custom_order", "customOrder", [])],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "merge_mode": self.merge_mode.value,
            "add_bookmarks": self.add_bookmarks,
            "preserve_metadata": self.preserve_metadata,
            "custom_order": [key.to_dict() for key in self.custom_order],
        }


@dataclass
class CompressOptions:
    compression_level: CompressionLevel = CompressionLevel.MEDIUM
    optimize_images: bool = True
    remove_metadata: bool = False

    def __post_init__(self):
        # "maximum" is the name older clients use for the strongest level
        if isinstance(self.compression_level, str) and self.compression_level.lower() == "maximum":
            self.compression_level = CompressionLevel.EXTREME
        self.compression_level = _enum(CompressionLevel, self.compression_level, "compression level")

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "CompressOptions":
        payload = payload or {}
        return cls(
            compression_level=_pick(payload, "compression_level", "compressionLevel", CompressionLevel.MEDIUM),
            optimize_images=_bool(_pick(payload, "optimize_images", "optimizeImages", True)),
            remove_metadata=_bool(_pick(payload, "remove_metadata", "removeMetadata", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "compression_level": self.compression_level.value,
            "optimize_images": self.optimize_images,
            "remove_metadata": self.remove_metadata,
        }


@dataclass
class ImageExtractionOptions:
    output_format: ImageFormat = ImageFormat.PNG
    dpi: int = 150
    color_mode: ColorMode = ColorMode.COLOR
    image_quality: int = 90
    selected_pages: Optional[List[int]] = None

    def __post_init__(self):
        if isinstance(self.output_format, str) and self.output_format.lower() == "jpg":
            self.output_format = ImageFormat.JPEG
        self.output_format = _enum(ImageFormat, self.output_format, "output format")
        self.color_mode = _enum(ColorMode, self.color_mode, "color mode")
        if not 36 <= self.dpi <= 600:
            raise InvalidOptions("Resolution must be between 36 and 600 DPI")
        if not 1 <= self.image_quality <= 100:
            raise InvalidOptions("Image quality must be between 1 and 100")

    @property
    def extension(self) -> str:
        return "jpg" if self.output_format is ImageFormat.JPEG else self.output_format.value

    @property
    def media_type(self) -> str:
        return f"image/{self.output_format.value}"

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ImageExtractionOptions":
        payload = payload or {}
        selected = _pick(payload, "selected_pages", "selectedPages")
        return cls(
            output_format=_pick(payload, "output_format", "outputFormat", ImageFormat.PNG),
            dpi=_int(_pick(payload, "dpi", "resolution", 150), "Resolution"),
            color_mode=_pick(payload, "color_mode", "colorMode", ColorMode.COLOR),
            image_quality=_int(_pick(payload, "image_quality", "imageQuality", 90), "Image quality"),
            selected_pages=_int_list(selected, "Selected page") if selected else None,
        )


@dataclass
class OrganizeOptions:
    sort_by: SortOrder = SortOrder.CUSTOM
    custom_order: List[int] = field(default_factory=list)
    remove_blank_pages: bool = False
    add_page_numbers: bool = False
    page_number_position: str = "bottom-center"

    def __post_init__(self):
        self.sort_by = _enum(SortOrder, self.sort_by, "sort order")
        if self.page_number_position not in PAGE_NUMBER_POSITIONS:
            raise InvalidOptions(f"Invalid page number position '{self.page_number_position}'")
        if len(set(self.custom_order)) != len(self.custom_order):
            raise InvalidOptions("Custom page order contains duplicate pages")

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "OrganizeOptions":
        payload = payload or {}
        return cls(
            sort_by=_pick(payload, "sort_by", "sortBy", SortOrder.CUSTOM),
            custom_order=_int_list(_pick(payload, "custom_order", "customOrder", []), "Page number"),
            remove_blank_pages=_bool(_pick(payload, "remove_blank_pages", "removeBlankPages", False)),
            add_page_numbers=_bool(_pick(payload, "add_page_numbers", "addPageNumbers", False)),
            page_number_position=_pick(payload, "page_number_position", "pageNumberPosition", "bottom-center"),
        )


@dataclass
class ProtectOptions:
    user_password: str
    owner_password: Optional[str] = None
    allow_printing: bool = True
    allow_copying: bool = False
    allow_modifying: bool = False
    allow_annotations: bool = False

    def __post_init__(self):
        password = self.user_password or ""
        if not password.strip():
            raise InvalidOptions("Password cannot be empty")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidOptions(f"Password too short (minimum {MIN_PASSWORD_LENGTH} characters)")
        if len(password) > MAX_PASSWORD_LENGTH:
            raise InvalidOptions(f"Password too long (maximum {MAX_PASSWORD_LENGTH} characters)")
        if any(not 0x20 <= ord(char) <= 0x7E for char in password):
            raise InvalidOptions("Password contains unsupported characters. Please use only ASCII characters.")

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ProtectOptions":
        payload = payload or {}
        return cls(
            user_password=str(_pick(payload, "user_password", "userPassword", "")),
            owner_password=_pick(payload, "owner_password", "ownerPassword"),
            allow_printing=_bool(_pick(payload, "allow_printing", "allowPrinting", True)),
            allow_copying=_bool(_pick(payload, "allow_copying", "allowCopying", False)),
            allow_modifying=_bool(_pick(payload, "allow_modifying", "allowModifying", False)),
            allow_annotations=_bool(_pick(payload, "allow_annotations", "allowAnnotations", False)),
        )


@dataclass
class UnlockOptions:
    password: str = ""

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "UnlockOptions":
        payload = payload or {}
        return cls(password=str(_pick(payload, "password", default="")))


@dataclass
class WatermarkOptions:
    text: Optional[str] = None
    opacity: float = 0.3
    position: str = "center"
    font_size: int = 48
    color: str = "gray"

    def __post_init__(self):
        if self.text is not None and not isinstance(self.text, str):
            raise InvalidOptions("Watermark text must be a string")
        if self.text is not None and not self.text.strip():
            self.text = None
        if not 0 < self.opacity <= 1:
            raise InvalidOptions("Watermark opacity must be between 0 and 1")
        if self.position not in WATERMARK_POSITIONS:
            raise InvalidOptions(f"Invalid watermark position '{self.position}'")
        if self.color not in WATERMARK_COLORS:
            raise InvalidOptions(f"Invalid watermark color '{self.color}'")
        if not 6 <= self.font_size <= 200:
            raise InvalidOptions("Font size must be between 6 and 200")

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "WatermarkOptions":
        payload = payload or {}
        try:
            opacity = float(_pick(payload, "opacity", "watermarkOpacity", 0.3))
        except (TypeError, ValueError):
            raise InvalidOptions("Watermark opacity must be a number")
        return cls(
            text=_pick(payload, "text", "watermarkText"),
            opacity=opacity,
            position=_pick(payload, "position", default="center"),
            font_size=_int(_pick(payload, "font_size", "fontSize", 48), "Font size"),
            color=_pick(payload, "color", default="gray"),
        )
