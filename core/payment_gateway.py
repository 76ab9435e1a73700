"""
MercadoPago payment gateway wrapper.

This module provides a thin wrapper around the official MercadoPago SDK.
The payment service only talks to the provider through this class, so
tests can replace it with a mock without touching the SDK.

The SDK returns plain dictionaries of the form:

    {"status": 201, "response": {...provider body...}}

A non-2xx status means the provider rejected the call; the body then
holds the provider's error description.

Usage:
    gateway = MercadoPagoGateway(access_token)

    preference = gateway.create_preference(preference_body)
    redirect_to(preference.init_point)

    info = gateway.get_payment(payment_id)
    if info.status is PaymentStatus.APPROVED:
        ...
"""

from __future__ import annotations

import json
import logging
from typing import Dict, Any, Optional

import mercadopago

from models.payment import PaymentInfo, PreferenceResult
from .exceptions import PaymentGatewayError


class MercadoPagoGateway:
    """
    Wrapper for the MercadoPago preference and payment APIs.

    Provides methods for:
    - Creating checkout preferences
    - Looking up a payment by id (used by the webhook)

    Attributes:
        sdk: Underlying mercadopago.SDK instance
    """

    def __init__(
        self,
        access_token: str,
        sdk: Optional[mercadopago.SDK] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the gateway.

        Args:
            access_token: MercadoPago access token (MERCADOPAGO_ACCESS_TOKEN)
            sdk: Pre-built SDK instance (optional, built from the token if not provided)
            logger: Logger instance (creates default if not provided)

        Raises:
            ValueError: If access_token is empty
        """
        if not access_token:
            raise ValueError("access_token is required - set MERCADOPAGO_ACCESS_TOKEN")

        self._sdk = sdk or mercadopago.SDK(access_token)
        self._logger = logger or logging.getLogger("catfecito.core.payment_gateway")

    @property
    def sdk(self) -> mercadopago.SDK:
        """Underlying SDK instance."""
        return self._sdk

    def create_preference(self, body: Dict[str, Any]) -> PreferenceResult:
        """
        Create a checkout preference.

        Args:
            body: Preference payload (items, payer, external_reference, ...)

        Returns:
            PreferenceResult with the preference id and checkout URLs

        Raises:
            PaymentGatewayError: If the call fails or no id is returned
        """
        self._logger.info(
            f"Sending preference to MercadoPago: "
            f"external_reference={body.get('external_reference')}, "
            f"items={len(body.get('items', []))}"
        )
        self._logger.debug(f"Preference body: {json.dumps(body, default=str)}")

        result = self._call("preference.create", lambda: self._sdk.preference().create(body))
        response = result.get("response") or {}

        preference = PreferenceResult.from_response(response)
        if not preference.preference_id:
            self._logger.error(f"MercadoPago returned no preference id: {response}")
            raise PaymentGatewayError(
                operation="preference.create",
                message="MercadoPago did not return a preference id",
                provider_status=result.get("status"),
                provider_response=response,
            )

        self._logger.info(f"Preference created: {preference.preference_id}")
        return preference

    def get_payment(self, payment_id: str) -> PaymentInfo:
        """
        Fetch payment details by id.

        Args:
            payment_id: Payment id from the webhook notification

        Returns:
            PaymentInfo with status and external reference

        Raises:
            PaymentGatewayError: If the lookup fails
        """
        self._logger.debug(f"Fetching payment {payment_id} from MercadoPago")

        result = self._call("payment.get", lambda: self._sdk.payment().get(payment_id))
        info = PaymentInfo.from_response(result.get("response") or {})

        self._logger.info(
            f"Payment {payment_id}: status={info.status.value}, "
            f"external_reference={info.external_reference}"
        )
        return info

    def _call(self, operation: str, func) -> Dict[str, Any]:
        """
        Run an SDK call and check its status.

        Args:
            operation: Name used in logs and errors
            func: Zero-argument callable performing the SDK call

        Returns:
            SDK result dictionary ({"status": ..., "response": ...})

        Raises:
            PaymentGatewayError: On transport errors or non-2xx status
        """
        try:
            result = func()
        except Exception as e:
            self._logger.error(f"MercadoPago {operation} failed: {e}", exc_info=True)
            raise PaymentGatewayError(
                operation=operation,
                message=f"MercadoPago {operation} failed: {e}",
            ) from e

        status = result.get("status")
        if not isinstance(status, int) or not 200 <= status < 300:
            response = result.get("response")
            self._logger.error(
                f"MercadoPago {operation} returned status {status}: "
                f"{json.dumps(response, default=str)}"
            )
            raise PaymentGatewayError(
                operation=operation,
                message=f"MercadoPago {operation} returned status {status}",
                provider_status=status if isinstance(status, int) else None,
                provider_response=response,
            )

        return result
