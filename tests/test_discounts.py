"""Tests for discount preview calculation and asset references."""

from decimal import Decimal

from coupon_engine.models.asset import ApplicableAsset, AssetKind, AssetRef
from coupon_engine.models.coupon import DiscountType
from coupon_engine.services.discounts import calculate_coupon_discount, calculate_discount


class TestCalculateDiscount:
    def test_percentage(self):
        result = calculate_discount(DiscountType.PERCENTAGE, Decimal("10"), Decimal("250"))
        assert result.discount_amount == Decimal("25.00")
        assert result.final_amount == Decimal("225.00")
        assert result.discount_percentage == Decimal("10.00")
        assert result.max_discount_reached is False

    def test_percentage_capped_by_max_discount(self):
        result = calculate_discount(
            DiscountType.PERCENTAGE, Decimal("50"), Decimal("300"), Decimal("100")
        )
        assert result.discount_amount == Decimal("100.00")
        assert result.final_amount == Decimal("200.00")
        assert result.max_discount_reached is True

    def test_fixed_amount_capped_by_order(self):
        result = calculate_discount(DiscountType.FIXED_AMOUNT, Decimal("80"), Decimal("50"))
        assert result.discount_amount == Decimal("50.00")
        assert result.final_amount == Decimal("0.00")
        assert result.discount_percentage == Decimal("100.00")

    def test_rounds_to_cents(self):
        result = calculate_discount(DiscountType.PERCENTAGE, Decimal("15"), Decimal("33.33"))
        assert result.discount_amount == Decimal("5.00")
        assert result.final_amount == Decimal("28.33")

    def test_zero_order(self):
        result = calculate_discount(DiscountType.FIXED_AMOUNT, Decimal("10"), Decimal("0"))
        assert result.discount_amount == Decimal("0.00")
        assert result.discount_percentage == Decimal("0")

    def test_from_coupon(self, make_coupon):
        coupon = make_coupon(discount_value=Decimal("20"), max_discount_amount=Decimal("30"))
        result = calculate_coupon_discount(coupon, Decimal("500"))
        assert result.discount_amount == Decimal("30.00")
        assert result.max_discount_reached is True


class TestAssetRef:
    def test_parse_known_kind(self):
        assert AssetRef.parse("restaurants", "R1") == AssetRef(AssetKind.RESTAURANTS, "R1")

    def test_parse_rejects_unknown_kind_and_blank_id(self):
        assert AssetRef.parse("boats", "B1") is None
        assert AssetRef.parse("events", "") is None
        assert AssetRef.parse(None, "E1") is None

    def test_applicable_asset_row(self):
        entry = ApplicableAsset.from_row({"asset_type": "events", "asset_id": "E1"})
        assert entry == ApplicableAsset(AssetRef(AssetKind.EVENTS, "E1"), is_active=True)
        assert ApplicableAsset.from_row({"asset_type": "nope", "asset_id": "E1"}) is None
