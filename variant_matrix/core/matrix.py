"""
Variant matrix - attribute editing, combination generation and row materialization.

Rows are identified by their attribute-value combination. Images live only on
the rows; the "row id -> images" index is derived from them on demand.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Tuple, Any, Iterable
from urllib.parse import quote

from variant_matrix.core.utils import (
    parse_image_list,
    parse_number,
    split_url_lines,
    strip_whitespace,
    alphanumeric_only,
)

logger = logging.getLogger(__name__)

COLOR_KEY = "Color"
SIZE_KEY = "Size"

STEP_DEFINE = "define"
STEP_CONFIGURE = "configure"

ROW_FIELDS = ("sku", "price", "mrp", "stock")
NUMERIC_FIELDS = ("price", "mrp", "stock")

# ((attribute name, value), ...) in attribute declaration order
CombinationKey = Tuple[Tuple[str, str], ...]


class MatrixValidationError(ValueError):
    """User input rejected before any state change or network call."""
    pass


class RowNotFoundError(LookupError):
    """No row with the given id in the current matrix."""
    pass


@dataclass
class MatrixOptions:
    """Defaults for SKU and placeholder synthesis, and the upload flag lifetime."""
    placeholder_base_url: str = "https://placehold.co"
    sku_prefix_length: int = 10
    sku_fallback_token: str = "PROD"
    upload_stale_seconds: int = 600


@dataclass
class Attribute:
    """A named axis of variation."""
    name: str
    values: List[str] = field(default_factory=list)
    optional: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "values": list(self.values), "optional": self.optional}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Attribute":
        return cls(
            name=data.get("name", ""),
            values=list(data.get("values") or []),
            optional=bool(data.get("optional", False)),
        )


@dataclass
class CombinationRow:
    """One generated combination plus its editable commercial fields."""
    id: str
    attributes: Dict[str, str]
    sku: str = ""
    price: float = 0
    mrp: float = 0
    stock: int = 0
    enabled: bool = True
    images: List[str] = field(default_factory=list)
    placeholder: bool = False  # images holds only the synthesized placeholder

    @property
    def key(self) -> CombinationKey:
        return tuple(self.attributes.items())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "attributes": dict(self.attributes),
            "sku": self.sku,
            "price": self.price,
            "mrp": self.mrp,
            "stock": self.stock,
            "enabled": self.enabled,
            "images": list(self.images),
            "placeholder": self.placeholder,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CombinationRow":
        attributes = dict(data.get("attributes") or {})
        return cls(
            id=data.get("id") or row_id_for(attributes),
            attributes=attributes,
            sku=data.get("sku", "") or "",
            price=data.get("price", 0) or 0,
            mrp=data.get("mrp", 0) or 0,
            stock=data.get("stock", 0) or 0,
            enabled=bool(data.get("enabled", True)),
            images=list(data.get("images") or []),
            placeholder=bool(data.get("placeholder", False)),
        )


@dataclass
class PersistedVariant:
    """A variant already stored for the product being edited."""
    sku: str = ""
    color: str = ""
    size: str = ""
    price: float = 0
    mrp: float = 0
    stock: int = 0
    images: List[str] = field(default_factory=list)
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sku": self.sku,
            "color": self.color,
            "size": self.size,
            "price": self.price,
            "mrp": self.mrp,
            "stock": self.stock,
            "images": list(self.images),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PersistedVariant":
        """Build from storefront data; `images` may be a JSON string."""
        color = data.get("color", "") or ""
        size = data.get("size", "") or ""
        return cls(
            id=data.get("id"),
            sku=data.get("sku", "") or "",
            color=color,
            size=size,
            price=data.get("price", 0) or 0,
            mrp=data.get("mrp", 0) or 0,
            stock=data.get("stock", 0) or 0,
            images=parse_image_list(data.get("images"), context=f"{color}-{size}"),
        )


@dataclass
class ProductVariant:
    """Variant record handed to the storefront on save."""
    sku: str
    color: str
    size: str
    price: float
    mrp: float
    stock: int
    images: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sku": self.sku,
            "color": self.color,
            "size": self.size,
            "price": self.price,
            "mrp": self.mrp,
            "stock": self.stock,
            "images": list(self.images),
        }


def default_attributes() -> List[Attribute]:
    """Attributes a new matrix starts with."""
    return [
        Attribute(name=COLOR_KEY),
        Attribute(name=SIZE_KEY, optional=True),
    ]


def active_attributes(attributes: Iterable[Attribute]) -> List[Attribute]:
    """Attributes that take part in generation: required ones, and optional ones with values."""
    return [attr for attr in attributes if not attr.optional or attr.values]


def generate_combinations(attributes: Iterable[Attribute]) -> List[Dict[str, str]]:
    """
    Cartesian product of attribute values.

    Optional attributes without values are skipped. A required attribute
    without values yields no combinations at all. Output order is attribute
    declaration order x value insertion order, e.g.
    Color=[Red, Blue], Size=[S, M] -> Red/S, Red/M, Blue/S, Blue/M.

    Args:
        attributes: Ordered attributes

    Returns:
        List of {attribute name: value} dicts, insertion-ordered
    """
    active = active_attributes(attributes)
    if not active:
        return []

    combinations: List[Dict[str, str]] = [{}]
    for attr in active:
        extended = []
        for combination in combinations:
            for value in attr.values:
                extended.append({**combination, attr.name: value})
        combinations = extended

    return combinations


def combination_key(combination: Dict[str, str]) -> CombinationKey:
    """Structural identity of a combination."""
    return tuple(combination.items())


def row_id_for(combination: Dict[str, str]) -> str:
    """
    Stable, injective string id for a combination.

    Each value is percent-encoded ("-" included) and the parts are joined
    with "-": {"Color": "Red", "Size": "S"} -> "Red-S",
    {"Color": "Navy Blue"} -> "Navy%20Blue".
    """
    return "-".join(
        quote(value, safe="").replace("-", "%2D")
        for value in combination.values()
    )


def sku_prefix(product_name: str, length: int = 10, fallback: str = "PROD") -> str:
    """
    SKU prefix from the product name.

    Examples:
        "Cotton T-Shirt (Men)" -> "COTTONTSHI"
        "" -> "PROD"
    """
    prefix = alphanumeric_only(product_name)[:length].upper()
    return prefix or fallback


def default_sku(product_name: str, combination: Dict[str, str], options: Optional[MatrixOptions] = None) -> str:
    """Default SKU: "{PREFIX}-{value}-{value}" with whitespace removed."""
    options = options or MatrixOptions()
    prefix = sku_prefix(product_name, options.sku_prefix_length, options.sku_fallback_token)
    return f"{prefix}-{strip_whitespace('-'.join(combination.values()))}"


def placeholder_image(color: str, size: Optional[str] = None, base_url: str = "https://placehold.co") -> str:
    """Placeholder image URL encoding the color (and size, if any)."""
    encoded_color = quote(color or "", safe="")
    encoded_size = quote(size, safe="") if size else ""
    return f"{base_url.rstrip('/')}/400x400/{encoded_color}/white?text={encoded_size}"


def find_persisted_variant(
    combination: Dict[str, str],
    existing_variants: Iterable[PersistedVariant]
) -> Optional[PersistedVariant]:
    """First persisted variant with the same color and, when present, size."""
    color = combination.get(COLOR_KEY)
    size = combination.get(SIZE_KEY)
    for variant in existing_variants:
        if variant.color == color and (not size or variant.size == size):
            return variant
    return None


def materialize_rows(
    attributes: List[Attribute],
    previous_rows: Iterable[CombinationRow],
    existing_variants: Iterable[PersistedVariant] = (),
    product_name: str = "",
    options: Optional[MatrixOptions] = None
) -> List[CombinationRow]:
    """
    Build the row set for the current attributes.

    Rows whose combination already existed keep every user-entered field and
    their images; one left without images gets a fresh placeholder. Persisted
    variants fill in new rows when editing an existing product. Everything
    else gets defaults. Running this twice on its own output yields the same
    rows.

    Args:
        attributes: Ordered attributes
        previous_rows: Rows from the last materialization
        existing_variants: Variants already stored for the product
        product_name: Used for default SKUs
        options: SKU / placeholder settings

    Returns:
        Rows in combination order
    """
    options = options or MatrixOptions()
    previous = {row.key: row for row in previous_rows}
    existing_variants = list(existing_variants)

    def default_images(combination: Dict[str, str]) -> List[str]:
        return [placeholder_image(
            combination.get(COLOR_KEY, ""),
            combination.get(SIZE_KEY),
            options.placeholder_base_url,
        )]

    rows = []
    for combination in generate_combinations(attributes):
        key = combination_key(combination)
        row_id = row_id_for(combination)
        prior = previous.get(key)

        if prior is not None:
            rows.append(CombinationRow(
                id=row_id,
                attributes=dict(combination),
                sku=prior.sku,
                price=prior.price,
                mrp=prior.mrp,
                stock=prior.stock,
                enabled=prior.enabled,
                images=list(prior.images) or default_images(combination),
                placeholder=prior.placeholder or not prior.images,
            ))
            continue

        persisted = find_persisted_variant(combination, existing_variants)
        images = list(persisted.images) if persisted else []
        placeholder = not images
        if placeholder:
            images = default_images(combination)

        rows.append(CombinationRow(
            id=row_id,
            attributes=dict(combination),
            sku=(persisted.sku if persisted and persisted.sku else default_sku(product_name, combination, options)),
            price=persisted.price if persisted else 0,
            mrp=persisted.mrp if persisted else 0,
            stock=persisted.stock if persisted else 0,
            enabled=True,
            images=images,
            placeholder=placeholder,
        ))

    return rows


class VariantMatrix:
    """
    Editor state for one product's variant matrix.

    Two steps: "define" (edit attribute values) and "configure" (edit the
    generated rows). Every mutating method validates its input first and
    raises MatrixValidationError without touching state when it is invalid.
    """

    def __init__(
        self,
        product_name: str = "",
        attributes: Optional[List[Attribute]] = None,
        rows: Optional[List[CombinationRow]] = None,
        existing_variants: Optional[List[PersistedVariant]] = None,
        step: str = STEP_DEFINE,
        uploading_row: Optional[str] = None,
        uploading_since: Optional[float] = None,
        options: Optional[MatrixOptions] = None
    ):
        self.product_name = product_name or ""
        self.attributes = attributes if attributes is not None else default_attributes()
        self.rows = rows or []
        self.existing_variants = existing_variants or []
        self.step = step
        self.uploading_row = uploading_row
        self.uploading_since = uploading_since
        self.options = options or MatrixOptions()

    @classmethod
    def from_existing(
        cls,
        product_name: str,
        existing_variants: List[PersistedVariant],
        options: Optional[MatrixOptions] = None
    ) -> "VariantMatrix":
        """
        Open a matrix for a product that already has variants.

        Color and Size values are seeded from the persisted variants in
        first-seen order.
        """
        attributes = default_attributes()
        for variant in existing_variants:
            if variant.color and variant.color not in attributes[0].values:
                attributes[0].values.append(variant.color)
            if variant.size and variant.size not in attributes[1].values:
                attributes[1].values.append(variant.size)

        return cls(
            product_name=product_name,
            attributes=attributes,
            existing_variants=list(existing_variants),
            options=options,
        )

    # Attribute editing

    def _attribute(self, attr_index: int) -> Attribute:
        if attr_index < 0 or attr_index >= len(self.attributes):
            raise MatrixValidationError(f"Attribute index {attr_index} out of range")
        return self.attributes[attr_index]

    def add_value(self, attr_index: int, value: str) -> str:
        """Append a value to an attribute; returns the stored (trimmed) value."""
        attr = self._attribute(attr_index)
        value = (value or "").strip()

        if not value:
            raise MatrixValidationError("Value cannot be empty")
        if value in attr.values:
            raise MatrixValidationError(f'"{value}" is already in the list')

        attr.values.append(value)
        self._on_attributes_changed()
        return value

    def remove_value(self, attr_index: int, value_index: int) -> str:
        """Remove a value by position; returns the removed value."""
        attr = self._attribute(attr_index)
        if value_index < 0 or value_index >= len(attr.values):
            raise MatrixValidationError(f"Value index {value_index} out of range for {attr.name}")

        removed = attr.values.pop(value_index)
        self._on_attributes_changed()
        return removed

    def _on_attributes_changed(self):
        if self.step == STEP_CONFIGURE:
            self.regenerate()

    # Steps

    def advance(self):
        """Move to "configure" once every required attribute has a value."""
        missing = [attr.name for attr in self.attributes if not attr.optional and not attr.values]
        if missing:
            raise MatrixValidationError(
                f"Please add at least one value for each required attribute: {', '.join(missing)}"
            )
        self.step = STEP_CONFIGURE
        self.regenerate()

    def back(self):
        """Return to "define"; rows are kept so edits survive the round trip."""
        self.step = STEP_DEFINE

    def regenerate(self) -> bool:
        """
        Re-materialize rows from the current attributes.

        Rows are left as they are when a required attribute has no values.

        Returns:
            False if skipped (not configuring, nothing to generate, or an
            upload is in flight), True otherwise
        """
        if self.step != STEP_CONFIGURE:
            return False

        if self.upload_in_progress():
            logger.info(f"Skipping variant row generation during image upload for row {self.uploading_row}")
            return False

        if self.uploading_row is not None:
            logger.warning(
                f"Clearing stale upload flag for row {self.uploading_row} "
                f"(set more than {self.options.upload_stale_seconds}s ago)"
            )
            self.end_upload()

        rows = materialize_rows(
            self.attributes,
            self.rows,
            self.existing_variants,
            self.product_name,
            self.options,
        )
        if not rows:
            logger.info(f"No variant combinations for '{self.product_name}'; keeping {len(self.rows)} existing rows")
            return False

        self.rows = rows
        logger.debug(f"Generated {len(self.rows)} variant rows for '{self.product_name}'")
        return True

    # Row editing

    def get_row(self, row_id: str) -> CombinationRow:
        for row in self.rows:
            if row.id == row_id:
                return row
        raise RowNotFoundError(f"Row {row_id} not found")

    def toggle_row(self, row_id: str) -> CombinationRow:
        row = self.get_row(row_id)
        row.enabled = not row.enabled
        return row

    def update_row(self, row_id: str, field_name: str, value: Any) -> CombinationRow:
        """Set sku (as text) or price/mrp/stock (parsed, blank -> 0)."""
        if field_name not in ROW_FIELDS:
            raise MatrixValidationError(f"Field '{field_name}' cannot be edited")

        row = self.get_row(row_id)
        if field_name == "sku":
            row.sku = "" if value is None else str(value)
        else:
            setattr(row, field_name, self._parse_field(field_name, value))
        return row

    def bulk_update(self, field_name: str, value: Any) -> int:
        """Set price, mrp or stock on every row; returns the number of rows."""
        if field_name not in NUMERIC_FIELDS:
            raise MatrixValidationError(f"Field '{field_name}' cannot be bulk updated")
        if value is None or (isinstance(value, str) and not value.strip()):
            raise MatrixValidationError("Please enter a valid number")

        number = self._parse_field(field_name, value)
        for row in self.rows:
            setattr(row, field_name, number)
        return len(self.rows)

    @staticmethod
    def _parse_field(field_name: str, value: Any):
        try:
            return parse_number(value, integer=(field_name == "stock"))
        except (TypeError, ValueError):
            raise MatrixValidationError(f"Invalid value for {field_name}: please enter a valid number")

    # Images

    def attach_images(self, row_id: str, urls: List[str]) -> CombinationRow:
        """Append images to a row, replacing the placeholder if that is all it has."""
        row = self.get_row(row_id)
        if not urls:
            return row

        if row.placeholder:
            row.images = list(urls)
            row.placeholder = False
        else:
            row.images = row.images + list(urls)
        return row

    def add_image_url(self, row_id: str, url: str) -> CombinationRow:
        url = (url or "").strip()
        if not url:
            raise MatrixValidationError("URL cannot be empty")
        return self.attach_images(row_id, [url])

    def add_image_urls(self, row_id: str, text: str) -> CombinationRow:
        """Attach one image per non-blank line of `text`."""
        if not text or not text.strip():
            raise MatrixValidationError("No URLs provided")
        urls = split_url_lines(text)
        if not urls:
            raise MatrixValidationError("No valid URLs")
        return self.attach_images(row_id, urls)

    def remove_image(self, row_id: str, index: int) -> str:
        """Remove the image at `index`; returns its URL."""
        row = self.get_row(row_id)
        if index < 0 or index >= len(row.images):
            raise MatrixValidationError(f"Image index {index} out of range")

        images = list(row.images)
        removed = images.pop(index)
        row.images = images
        if not images:
            row.placeholder = False
        return removed

    def images_by_row(self) -> Dict[str, List[str]]:
        """Derived row id -> images index (rows with at least one image)."""
        return {row.id: list(row.images) for row in self.rows if row.images}

    def preview_images(self, row_id: str) -> List[str]:
        images = self.get_row(row_id).images
        if not images:
            raise MatrixValidationError("This variant has no images to preview")
        return list(images)

    def begin_upload(self, row_id: str):
        self.get_row(row_id)
        self.uploading_row = row_id
        self.uploading_since = time.time()

    def end_upload(self):
        self.uploading_row = None
        self.uploading_since = None

    def upload_in_progress(self) -> bool:
        """True while an upload flag is set and younger than upload_stale_seconds."""
        if self.uploading_row is None:
            return False
        if self.uploading_since is None:
            return True
        return time.time() - self.uploading_since < self.options.upload_stale_seconds

    # Save

    def build_variants(self) -> List[ProductVariant]:
        """
        Validate enabled rows and convert them to ProductVariant records.

        Raises:
            MatrixValidationError: No enabled rows, or a zero price/MRP
        """
        enabled_rows = [row for row in self.rows if row.enabled]
        if not enabled_rows:
            raise MatrixValidationError("No variants enabled: please enable at least one variant to save")

        if any(row.price == 0 or row.mrp == 0 for row in enabled_rows):
            raise MatrixValidationError("Price and MRP cannot be 0 for any variant")

        index = self.images_by_row()
        return [
            ProductVariant(
                sku=row.sku,
                color=row.attributes.get(COLOR_KEY, ""),
                size=row.attributes.get(SIZE_KEY, ""),
                price=row.price,
                mrp=row.mrp,
                stock=row.stock,
                images=index.get(row.id, []),
            )
            for row in enabled_rows
        ]

    # Serialization

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_name": self.product_name,
            "step": self.step,
            "attributes": [attr.to_dict() for attr in self.attributes],
            "rows": [row.to_dict() for row in self.rows],
            "existing_variants": [variant.to_dict() for variant in self.existing_variants],
            "uploading_row": self.uploading_row,
            "uploading_since": self.uploading_since,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], options: Optional[MatrixOptions] = None) -> "VariantMatrix":
        attributes = data.get("attributes")
        return cls(
            product_name=data.get("product_name", ""),
            attributes=[Attribute.from_dict(a) for a in attributes] if attributes is not None else None,
            rows=[CombinationRow.from_dict(r) for r in data.get("rows", [])],
            existing_variants=[PersistedVariant.from_dict(v) for v in data.get("existing_variants", [])],
            step=data.get("step", STEP_DEFINE),
            uploading_row=data.get("uploading_row"),
            uploading_since=data.get("uploading_since"),
            options=options,
        )
