"""
Cache Domain Services

Invalidation choreography: after each mutation, exactly the cache
namespaces whose content may now be stale are removed, before the
mutation reports success to its caller.
"""

import logging
from typing import Any, Dict, Optional

from opentelemetry import trace

from .repository_interfaces import CacheStore
from .value_objects import CacheKey, CacheNamespace, CachePattern

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class CacheInvalidationService:
    """
    Domain service for cache invalidation strategies.

    Every list key is removed by exact match plus the children pattern
    of that key, so paged variants go with it and neighbouring ids stay.
    """

    def __init__(self, store: CacheStore):
        self.store = store

    def _drop_key_family(self, key: CacheKey) -> int:
        removed = 1 if self.store.delete(key) else 0
        return removed + self.store.invalidate_by_pattern(CachePattern.children_of(key))

    def invalidate_business_customers(self, business_id: Optional[Any]) -> int:
        """
        Customer list and every search of one business.

        Without a business id the whole customer namespace goes.
        """
        if not business_id:
            return self.store.invalidate_by_pattern(
                CachePattern.namespace(CacheNamespace.CUSTOMERS)
            )
        count = self._drop_key_family(CacheKey.customers_by_business(business_id))
        count += self.store.invalidate_by_pattern(
            CachePattern.customer_search(business_id)
        )
        return count

    def invalidate_customer(self, customer_id: Any) -> int:
        return 1 if self.store.delete(CacheKey.customer_by_id(customer_id)) else 0

    def invalidate_business_transfers(self, business_id: Optional[Any]) -> int:
        """
        Transfer lists of one business, paged views included.

        Without a business id the whole transfer namespace goes.
        """
        if not business_id:
            return self.store.invalidate_by_pattern(
                CachePattern.namespace(CacheNamespace.TRANSFERS)
            )
        return self._drop_key_family(CacheKey.transfers_by_business(business_id))

    def invalidate_client_transfers(self, client_id: Any) -> int:
        return self._drop_key_family(CacheKey.transfers_by_client(client_id))

    def invalidate_transfer(self, transfer_id: Any) -> int:
        return 1 if self.store.delete(CacheKey.transfer_by_id(transfer_id)) else 0

    def invalidate_eligibility(self, document_number: Optional[Any]) -> int:
        """
        Eligibility of one customer across every business.

        Without a document number the whole eligibility namespace goes.
        """
        if document_number:
            pattern = CachePattern.eligibility_for_document(document_number)
        else:
            pattern = CachePattern.namespace(CacheNamespace.ELIGIBILITY)
        return self.store.invalidate_by_pattern(pattern)

    def after_customer_modified(
        self, business_id: Optional[Any], customer_id: Optional[Any] = None
    ) -> int:
        """
        Invalidate caches after a customer was created, edited or deleted.

        Args:
            business_id: Business owning the customer
            customer_id: Customer id when known (absent on create)

        Returns:
            Number of cache entries invalidated
        """
        with tracer.start_as_current_span("cache.after_customer_modified") as span:
            span.set_attribute("business_id", str(business_id))

            try:
                count = self.invalidate_business_customers(business_id)
                if customer_id is not None:
                    span.set_attribute("customer_id", str(customer_id))
                    count += self.invalidate_customer(customer_id)

                span.set_attribute("invalidated_count", count)
                logger.info(
                    f"Invalidated {count} customer cache entries for business {business_id}",
                    extra={
                        "business_id": str(business_id),
                        "customer_id": str(customer_id),
                        "count": count,
                    },
                )
                return count

            except Exception as e:
                logger.error(
                    f"Failed to invalidate customer caches for business {business_id}: {e}"
                )
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise

    def after_transfer_recorded(
        self,
        business_id: Any,
        client_id: Optional[Any],
        document_number: Optional[Any],
        transfer_id: Optional[Any] = None,
    ) -> int:
        """
        Invalidate caches after a transfer was recorded or cancelled.

        The customer's eligibility goes for every business, since the
        rolling window spans all of them.
        """
        with tracer.start_as_current_span("cache.after_transfer_recorded") as span:
            span.set_attribute("business_id", str(business_id))

            try:
                # Eligibility first: it gates the next write.
                count = self.invalidate_eligibility(document_number)
                count += self.invalidate_business_transfers(business_id)
                if client_id is not None:
                    count += self.invalidate_client_transfers(client_id)
                else:
                    logger.warning(
                        f"Transfer for business {business_id} has no client id; "
                        "client transfer lists left to expire"
                    )
                if transfer_id is not None:
                    count += self.invalidate_transfer(transfer_id)

                span.set_attribute("invalidated_count", count)
                logger.info(
                    f"Invalidated {count} transfer cache entries for business {business_id}",
                    extra={
                        "business_id": str(business_id),
                        "client_id": str(client_id),
                        "count": count,
                    },
                )
                return count

            except Exception as e:
                logger.error(
                    f"Failed to invalidate transfer caches for business {business_id}: {e}"
                )
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise

    def clear_all(self, reason: str = "manual") -> int:
        """Empty the whole store (sign-out, tenant switch)."""
        with tracer.start_as_current_span("cache.clear_all") as span:
            span.set_attribute("reason", reason)
            count = self.store.clear()
            span.set_attribute("invalidated_count", count)
            logger.info(
                f"Cleared {count} cache entries",
                extra={"reason": reason, "count": count},
            )
            return count

    def namespace_sizes(self) -> Dict[str, int]:
        """Entry count per namespace."""
        sizes = {namespace.value: 0 for namespace in CacheNamespace}
        for key in self.store.get_stats().keys:
            namespace = key.split(":", 1)[0]
            sizes[namespace] = sizes.get(namespace, 0) + 1
        return sizes
