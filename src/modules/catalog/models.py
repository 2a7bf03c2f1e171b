"""Product and Variant models consumed by the order core.

Business rules implemented:
- SKU must be unique in the system (normalised to uppercase).
- Price must be greater than zero.
- Sale price, when present, must not exceed the price.
- Stock cannot be negative (database check constraint).
- Only ``active`` variants can be sold (enforced at service layer).
"""

from __future__ import annotations

from decimal import Decimal

import structlog
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import SoftDeleteModel

logger = structlog.get_logger(__name__)


class ProductStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"


class VariantStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"
    OUT_OF_STOCK = "out_of_stock", "Out of stock"


class VariantSize(models.TextChoices):
    S = "S", "S"
    M = "M", "M"
    L = "L", "L"
    XL = "XL", "XL"
    XXL = "XXL", "XXL"
    XXXL = "XXXL", "XXXL"


class Product(SoftDeleteModel):
    name = models.CharField(max_length=255)
    brand = models.CharField(max_length=120, blank=True, default="")
    description = models.TextField(blank=True, default="")
    status = models.CharField(
        max_length=20,
        choices=ProductStatus.choices,
        default=ProductStatus.ACTIVE,
    )

    class Meta:
        db_table = "products"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["status"], name="products_status_idx"),
        ]

    def __str__(self) -> str:
        return self.name


class Variant(SoftDeleteModel):
    """A purchasable SKU of a product (size/color/price/stock).

    ``stock`` is only ever changed through ``adjust_stock`` on the catalog
    repository, which issues a guarded ``UPDATE ... SET stock = stock + n``.
    """

    product = models.ForeignKey(
        "catalog.Product",
        on_delete=models.PROTECT,
        related_name="variants",
    )
    sku = models.CharField(max_length=64, unique=True)
    size = models.CharField(max_length=8, choices=VariantSize.choices)
    color = models.CharField(max_length=40)
    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    sale_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        default=None,
    )
    stock = models.PositiveIntegerField(default=0)
    status = models.CharField(
        max_length=20,
        choices=VariantStatus.choices,
        default=VariantStatus.ACTIVE,
    )

    class Meta:
        db_table = "variants"
        ordering = ["sku"]
        indexes = [
            models.Index(fields=["product", "status"], name="variants_product_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(stock__gte=0),
                name="variants_stock_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(price__gt=0),
                name="variants_price_positive",
            ),
            models.UniqueConstraint(
                fields=["product", "size", "color"],
                name="variants_product_size_color_uniq",
            ),
        ]

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def clean(self) -> None:
        super().clean()
        if self.price is not None and self.price <= 0:
            raise ValidationError({"price": "Price must be greater than zero."})
        if (
            self.sale_price is not None
            and self.price is not None
            and self.sale_price > self.price
        ):
            raise ValidationError(
                {"sale_price": "Sale price must be less than or equal to the price."}
            )

    @property
    def is_active(self) -> bool:
        return self.status == VariantStatus.ACTIVE

    @property
    def effective_price(self) -> Decimal:
        return self.sale_price or self.price

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args, **kwargs) -> None:
        if self.sku:
            self.sku = self.sku.strip().upper()
        if self.color:
            self.color = self.color.strip().lower()
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.sku} ({self.size}/{self.color})"
