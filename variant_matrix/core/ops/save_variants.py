"""
Save operation - validate the matrix and persist enabled variants.
"""

import logging
from typing import Dict, Any

from variant_matrix.core.matrix import VariantMatrix
from variant_matrix.core.storefront_client import StorefrontClient, StorefrontError

logger = logging.getLogger(__name__)


async def save_matrix_variants(
    matrix: VariantMatrix,
    product_id: int,
    client: StorefrontClient
) -> Dict[str, Any]:
    """
    Send the enabled rows to the storefront as one batch.

    Validation runs first; when it fails nothing is sent.

    Args:
        matrix: VariantMatrix to save
        product_id: Storefront product ID
        client: StorefrontClient instance

    Returns:
        Dict with product_id, saved count, the variants sent and the
        storefront response

    Raises:
        MatrixValidationError: No enabled rows, or zero price/MRP
        StorefrontError: Storefront rejected the batch or was unreachable
    """
    variants = [variant.to_dict() for variant in matrix.build_variants()]

    try:
        response = await client.save_variants(product_id, variants)
    except StorefrontError as e:
        logger.error(f"Failed to save {len(variants)} variants for product {product_id}: {str(e)}")
        raise

    logger.info(f"Saved {len(variants)} variants for product {product_id}")
    return {
        "product_id": product_id,
        "saved": len(variants),
        "variants": variants,
        "response": response
    }
