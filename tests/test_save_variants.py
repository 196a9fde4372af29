"""
Tests for the save gate and the storefront hand-off.
"""

import asyncio
import json

import httpx
import pytest

from variant_matrix.core.matrix import MatrixValidationError
from variant_matrix.core.ops.save_variants import save_matrix_variants
from variant_matrix.core.storefront_client import StorefrontClient, StorefrontError
from conftest import RequestRecorder


def priced(matrix, price=100, mrp=120):
    for row in matrix.rows:
        matrix.update_row(row.id, "price", price)
        matrix.update_row(row.id, "mrp", mrp)
    return matrix


class TestBuildVariants:
    """Validation gate."""

    def test_no_enabled_rows(self, color_matrix):
        priced(color_matrix)
        for row in color_matrix.rows:
            color_matrix.toggle_row(row.id)

        with pytest.raises(MatrixValidationError, match="No variants enabled"):
            color_matrix.build_variants()

    @pytest.mark.parametrize("field", ["price", "mrp"])
    def test_zero_price_or_mrp_on_enabled_row(self, color_matrix, field):
        priced(color_matrix)
        color_matrix.update_row("Blue", field, 0)

        with pytest.raises(MatrixValidationError, match="cannot be 0"):
            color_matrix.build_variants()

    def test_zero_price_on_disabled_row_is_ignored(self, color_matrix):
        priced(color_matrix)
        color_matrix.update_row("Blue", "price", 0)
        color_matrix.toggle_row("Blue")

        variants = color_matrix.build_variants()

        assert [v.color for v in variants] == ["Red"]

    def test_maps_enabled_rows(self, color_matrix):
        color_matrix.add_value(1, "S")
        priced(color_matrix, price=90, mrp=100)
        color_matrix.update_row("Red-S", "stock", 5)
        color_matrix.add_image_url("Red-S", "https://cdn.test/red.jpg")

        variants = [v.to_dict() for v in color_matrix.build_variants()]

        assert variants[0] == {
            "sku": "COTTONTEE-Red-S",
            "color": "Red",
            "size": "S",
            "price": 90,
            "mrp": 100,
            "stock": 5,
            "images": ["https://cdn.test/red.jpg"],
        }
        assert variants[1]["color"] == "Blue"
        assert variants[1]["images"] == ["https://placehold.co/400x400/Blue/white?text=S"]

    def test_missing_size_and_images_default_to_empty(self, color_matrix):
        priced(color_matrix)
        color_matrix.remove_image("Red", 0)

        red = color_matrix.build_variants()[0]

        assert red.size == ""
        assert red.images == []


class TestSaveMatrixVariants:
    """save_matrix_variants talks to the storefront only after validation."""

    def test_sends_one_batch(self, color_matrix, storefront_recorder, storefront_client_factory):
        priced(color_matrix)
        client = storefront_client_factory(storefront_recorder)

        result = asyncio.run(save_matrix_variants(color_matrix, 7, client))

        assert len(storefront_recorder.requests) == 1
        request = storefront_recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/products/7/variants"
        body = json.loads(request.content)
        assert [v["color"] for v in body["variants"]] == ["Red", "Blue"]
        assert result["saved"] == 2
        assert result["response"] == {"ok": True}

    def test_all_disabled_makes_no_network_call(self, color_matrix, storefront_recorder, storefront_client_factory):
        priced(color_matrix)
        for row in color_matrix.rows:
            color_matrix.toggle_row(row.id)
        client = storefront_client_factory(storefront_recorder)

        with pytest.raises(MatrixValidationError):
            asyncio.run(save_matrix_variants(color_matrix, 7, client))
        assert storefront_recorder.requests == []

    def test_zero_price_makes_no_network_call(self, color_matrix, storefront_recorder, storefront_client_factory):
        priced(color_matrix, price=0)
        client = storefront_client_factory(storefront_recorder)

        with pytest.raises(MatrixValidationError):
            asyncio.run(save_matrix_variants(color_matrix, 7, client))
        assert storefront_recorder.requests == []

    def test_storefront_failure_is_not_retried(self, color_matrix, storefront_client_factory):
        priced(color_matrix)
        recorder = RequestRecorder(lambda request, n: httpx.Response(503, text="unavailable"))
        client = storefront_client_factory(recorder)

        with pytest.raises(StorefrontError, match="HTTP 503"):
            asyncio.run(save_matrix_variants(color_matrix, 7, client))
        assert len(recorder.requests) == 1


class TestStorefrontClient:
    """Client details."""

    def test_bearer_token_and_custom_path(self):
        recorder = RequestRecorder(lambda request, n: httpx.Response(204))
        client = StorefrontClient(
            "https://shop.test/",
            variants_path="/v2/items/{product_id}/variants/bulk",
            api_token="secret",
            transport=recorder.transport,
        )

        result = asyncio.run(client.save_variants(3, []))

        assert result == {}
        request = recorder.requests[0]
        assert request.url == "https://shop.test/v2/items/3/variants/bulk"
        assert request.headers["Authorization"] == "Bearer secret"

    def test_connection_error(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        client = StorefrontClient("https://shop.test", transport=httpx.MockTransport(refuse))

        with pytest.raises(StorefrontError, match="Request error"):
            asyncio.run(client.save_variants(3, []))
