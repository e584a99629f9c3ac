"""Notion page property values and field mapping."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from notion_clipper.blocks import MAX_TEXT_LENGTH, MAX_URL_LENGTH
from notion_clipper.converter import is_embeddable_url
from notion_clipper.document import Article, AssetReference
from notion_clipper.errors import ValidationError

MAX_OPTION_LENGTH = 100

# Property name fragments used to guess which article field feeds a property
COMMON_FIELD_NAMES = {
    "title": ["title", "name", "heading", "标题"],
    "content": ["content", "body", "article", "text", "内容", "正文"],
    "url": ["url", "link", "source", "uri", "链接", "网址"],
    "main_image": ["cover", "image", "main_image", "thumbnail", "封面", "图片"],
    "tags": ["tag", "tags", "category", "categories", "标签", "分类"],
    "author": ["author", "username", "creator", "作者"],
    "publish_date": ["date", "published_date", "create_date", "日期"],
}


def _text_objects(text: str) -> List[Dict]:
    # Property text is a single run; longer values are cut at the run limit
    return [{"type": "text", "text": {"content": text[:MAX_TEXT_LENGTH]}}]


@dataclass(frozen=True)
class TitleValue:
    text: str

    def to_dict(self) -> Dict:
        return {"title": _text_objects(self.text)}


@dataclass(frozen=True)
class RichTextValue:
    text: str

    def to_dict(self) -> Dict:
        return {"rich_text": _text_objects(self.text)}


@dataclass(frozen=True)
class UrlValue:
    url: str

    def to_dict(self) -> Dict:
        return {"url": self.url}


@dataclass(frozen=True)
class FilesValue:
    name: str
    asset: AssetReference

    def to_dict(self) -> Dict:
        file_object = {"name": self.name[:MAX_OPTION_LENGTH]}
        file_object.update(self.asset.to_file_object())
        return {"files": [file_object]}


@dataclass(frozen=True)
class CheckboxValue:
    checked: bool

    def to_dict(self) -> Dict:
        return {"checkbox": self.checked}


@dataclass(frozen=True)
class SelectValue:
    name: str

    def to_dict(self) -> Dict:
        return {"select": {"name": self.name}}


@dataclass(frozen=True)
class MultiSelectValue:
    names: tuple

    def to_dict(self) -> Dict:
        return {"multi_select": [{"name": name} for name in self.names]}


@dataclass(frozen=True)
class DateValue:
    start: str

    def to_dict(self) -> Dict:
        return {"date": {"start": self.start}}


@dataclass(frozen=True)
class NumberValue:
    number: float

    def to_dict(self) -> Dict:
        return {"number": self.number}


@dataclass(frozen=True)
class EmailValue:
    email: str

    def to_dict(self) -> Dict:
        return {"email": self.email}


@dataclass(frozen=True)
class PhoneValue:
    phone: str

    def to_dict(self) -> Dict:
        return {"phone_number": self.phone}


PropertyValue = Union[
    TitleValue, RichTextValue, UrlValue, FilesValue, CheckboxValue, SelectValue,
    MultiSelectValue, DateValue, NumberValue, EmailValue, PhoneValue,
]


@dataclass
class FieldMapping:
    """How one database property is filled: from an article field or a literal."""
    property_name: str
    property_type: str
    source_field: Optional[str] = None
    literal_value: Any = None
    enabled: bool = True

    @classmethod
    def from_dict(cls, name: str, data: Dict) -> "FieldMapping":
        return cls(
            property_name=data.get("property_name") or data.get("propertyName") or name,
            property_type=data.get("property_type") or data["propertyType"],
            source_field=data.get("source_field") or data.get("sourceField"),
            literal_value=data.get("literal_value", data.get("customValue")),
            enabled=data.get("enabled", data.get("isEnabled", True)),
        )

    def to_dict(self) -> Dict:
        data = {"property_type": self.property_type, "enabled": self.enabled}
        if self.source_field:
            data["source_field"] = self.source_field
        if self.literal_value is not None:
            data["literal_value"] = self.literal_value
        return data


def _option_name(value: Any) -> str:
    name = str(value).strip()
    if not name:
        raise ValidationError("Empty option name")
    return name[:MAX_OPTION_LENGTH]


def build_property_value(property_type: str, value: Any,
                         assets: Optional[Dict[str, AssetReference]] = None) -> Optional[PropertyValue]:
    """
    Build a property value of the given type.

    Returns:
        The value, or None when there is nothing to set

    Raises:
        ValidationError: value cannot be represented (the caller drops the field)
    """
    if property_type == "checkbox":
        if isinstance(value, str):
            return CheckboxValue(value.strip().lower() in ("1", "true", "yes", "on"))
        return CheckboxValue(bool(value))

    if value is None or value == "" or value == []:
        return None

    if property_type == "title":
        return TitleValue(str(value))

    if property_type == "rich_text":
        return RichTextValue(str(value))

    if property_type == "url":
        url = str(value)
        if len(url) > MAX_URL_LENGTH:
            # A truncated URL is a broken URL
            raise ValidationError(f"URL longer than {MAX_URL_LENGTH} characters")
        return UrlValue(url)

    if property_type == "files":
        ref = (assets or {}).get(str(value)) or AssetReference.external(str(value))
        if not ref.is_uploaded and not is_embeddable_url(ref.value):
            raise ValidationError(f"Unusable file URL ({len(ref.value or '')} chars)")
        return FilesValue("image", ref)

    if property_type == "select":
        if isinstance(value, (list, tuple)):
            value = value[0]
        return SelectValue(_option_name(value))

    if property_type == "multi_select":
        values = value if isinstance(value, (list, tuple)) else [value]
        names = tuple(_option_name(v) for v in values if v is not None and str(v).strip())
        return MultiSelectValue(names) if names else None

    if property_type == "date":
        return DateValue(str(value))

    if property_type == "number":
        try:
            return NumberValue(float(value))
        except (TypeError, ValueError):
            raise ValidationError(f"Not a number: {value!r}")

    if property_type == "email":
        if "@" not in str(value):
            raise ValidationError(f"Not an email address: {value!r}")
        return EmailValue(str(value))

    if property_type == "phone_number":
        return PhoneValue(str(value))

    raise ValidationError(f"Unsupported property type: {property_type}")


def build_properties(article: Article, mapping: Dict[str, FieldMapping],
                     assets: Optional[Dict[str, AssetReference]] = None) -> Dict[str, PropertyValue]:
    """Evaluate a field mapping against an article. Invalid fields are dropped."""
    properties: Dict[str, PropertyValue] = {}
    for name, field_mapping in mapping.items():
        if not field_mapping.enabled:
            continue
        if field_mapping.source_field:
            value = article.get_field(field_mapping.source_field)
        else:
            value = field_mapping.literal_value
        try:
            prop = build_property_value(field_mapping.property_type, value, assets)
        except ValidationError as e:
            logger.warning("Dropping property '{}': {}", name, e.message)
            continue
        if prop is not None:
            properties[field_mapping.property_name or name] = prop
    return properties


def detect_field_mapping(schema: Dict[str, str]) -> Dict[str, FieldMapping]:
    """
    Guess a field mapping from a database schema.

    Args:
        schema: Property name -> property type

    Returns:
        Mapping for every property whose name or type matches a known field
    """
    mapping: Dict[str, FieldMapping] = {}
    for name, prop_type in schema.items():
        source = _detect_source_field(name, prop_type)
        if source:
            mapping[name] = FieldMapping(name, prop_type, source_field=source)
    logger.debug("Detected {} mapped fields out of {}", len(mapping), len(schema))
    return mapping


def _detect_source_field(name: str, prop_type: str) -> Optional[str]:
    lower = name.lower()

    def matches(field_name: str) -> bool:
        return any(fragment in lower for fragment in COMMON_FIELD_NAMES[field_name])

    if prop_type == "title":
        return "title"
    if prop_type == "rich_text" and matches("content"):
        return "content"
    if prop_type == "url":
        return "url"
    if prop_type == "files" and matches("main_image"):
        return "main_image"
    if prop_type in ("select", "multi_select") and matches("tags"):
        return "tags"
    if prop_type == "rich_text" and matches("author"):
        return "author"
    if prop_type == "date" and matches("publish_date"):
        return "publish_date"
    return None
