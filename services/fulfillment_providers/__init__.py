from abc import ABC, abstractmethod


class OrderSubmissionError(Exception):
    """An order could not be handed to (or found at) the fulfillment provider."""


class FulfillmentProvider(ABC):
    """
    Abstract base class for fulfillment providers.
    """

    @abstractmethod
    def build_order_payload(self, order: dict, items: list, variants: list, external_id: str) -> dict:
        """
        Translate a local order into the provider's order body.

        Raises:
            OrderSubmissionError: If an item cannot be mapped to a provider variant.
        """
        pass

    @abstractmethod
    def submit_order(self, payload: dict) -> dict:
        """
        Create the order at the provider.

        Returns:
            dict: The provider's order record (must include its `id`).
        """
        pass

    @abstractmethod
    def cancel_order(self, provider_order_id) -> dict:
        """
        Cancel an order with the provider. Returns the updated order record.
        """
        pass

    @abstractmethod
    def get_status(self, provider_order_id) -> dict:
        """
        Get the provider's current order record.
        """
        pass

    @abstractmethod
    def map_status(self, provider_status: str) -> str:
        """
        Map a provider status onto a local order status.
        """
        pass
