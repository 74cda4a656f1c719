"""
DHL Express Carrier Implementation

This module implements the DHL Express (MyDHL API) integration. DHL is the
only carrier we route international shipments to; it also prices domestic
Nigerian express deliveries.

DHL API Docs:
 - https://developer.dhl.com/api-reference/dhl-express-mydhl-api#reference-docs-section
"""

import base64
import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from app.core.enums import ProviderKey
from app.core.exceptions import ProviderAPIError
from app.schemas.order import ProviderOrderResponse, TrackingStatus
from app.schemas.quote import RawQuote, UnifiedQuoteRequest
from app.services.shipping.base import BaseCarrier

logger = logging.getLogger(__name__)

DEFAULT_DIMENSION_CM = 10


class DHLCarrier(BaseCarrier):
    """DHL Express carrier implementation."""

    carrier_name = "DHL Express"
    carrier_code = ProviderKey.DHL

    international = True

    def __init__(self, rate_limiter, settings, timeout: float = 30.0):
        """Initialize the DHL Express carrier.

        Args:
            rate_limiter: Shared provider rate limiter
            settings: Application settings holding DHL credentials
            timeout: Per-request timeout in seconds
        """
        super().__init__(rate_limiter, timeout)
        self.settings = settings
        self.api_key = settings.DHL_API_KEY
        self.api_secret = settings.DHL_API_SECRET
        self.account_number = settings.DHL_ACCOUNT_NUMBER
        self.test_mode = settings.DHL_TEST_MODE

        # Base URL varies depending on test mode
        self.base_url = "https://express.api.dhl.com/mydhlapi/test" if self.test_mode else "https://express.api.dhl.com/mydhlapi"

        # Authentication credentials
        self.credentials = f"{self.api_key}:{self.api_secret}"
        self.encoded_credentials = base64.b64encode(self.credentials.encode()).decode()

    def _get_headers(self, include_message_ref: bool = False) -> Dict[str, str]:
        """Get the standard headers for API requests

        Args:
            include_message_ref: Whether to include a message reference (needed for some endpoints)

        Returns:
            Dictionary of headers
        """
        headers = {
            'Content-Type': 'application/json',
            'Accept': 'application/json',
            'Authorization': f'Basic {self.encoded_credentials}'
        }

        if include_message_ref:
            # Required length: 28-36 chars
            headers['Message-Reference'] = str(uuid.uuid4())
            headers['Message-Reference-Date'] = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S GMT+00:00")

        return headers

    @staticmethod
    def _product_code(request: UnifiedQuoteRequest) -> str:
        """P = express worldwide, D = international documents, N = domestic express"""
        if request.meta.get("product_code"):
            return request.meta["product_code"]
        if request.is_international:
            return "D" if request.item.is_document else "P"
        return "N"

    @staticmethod
    def _eta_days(estimated: Optional[str]) -> str:
        if not estimated:
            return "2-5 days"
        try:
            eta = datetime.fromisoformat(estimated)
        except ValueError:
            return "2-5 days"
        if eta.tzinfo is None:
            eta = eta.replace(tzinfo=timezone.utc)
        days = max(1, math.ceil((eta - datetime.now(timezone.utc)).total_seconds() / 86400))
        return "1 day" if days == 1 else f"{days} days"

    async def get_quote(self, request: UnifiedQuoteRequest) -> RawQuote:
        """Get an NGN rate for the shipment"""
        product_code = "P" if request.is_international else "N"
        params = {
            "accountNumber": self.account_number,
            "originCountryCode": request.pickup.country_code,
            "originCityName": request.pickup.city,
            "destinationCountryCode": request.delivery.country_code,
            "destinationCityName": request.delivery.city,
            "weight": request.item.weight,
            "length": request.item.length or DEFAULT_DIMENSION_CM,
            "width": request.item.width or DEFAULT_DIMENSION_CM,
            "height": request.item.height or DEFAULT_DIMENSION_CM,
            "plannedShippingDate": (datetime.now(timezone.utc) + timedelta(hours=1)).date().isoformat(),
            "isCustomsDeclarable": str(request.is_international).lower(),
            "unitOfMeasurement": "metric",
            "productCode": product_code,
        }
        data = await self._make_request("GET", f"{self.base_url}/rates", headers=self._get_headers(), params=params)

        product = next(
            (
                p for p in data.get("products") or []
                if p.get("productCode") == product_code
                and any(tp.get("priceCurrency") == "NGN" and (tp.get("price") or 0) > 0 for tp in p.get("totalPrice") or [])
            ),
            None,
        )
        if product is None:
            scope = "INTERNATIONAL" if request.is_international else "DOMESTIC"
            raise ProviderAPIError(f"No valid DHL EXPRESS {scope} quote available")

        price = next(tp["price"] for tp in product["totalPrice"] if tp.get("priceCurrency") == "NGN")
        capabilities = product.get("deliveryCapabilities") or {}
        return RawQuote(
            provider_key=self.carrier_code,
            price=Decimal(str(price)),
            eta=self._eta_days(capabilities.get("estimatedDeliveryDateAndTime")),
            service_type=product.get("productName") or "express",
            meta={
                "productCode": product.get("productCode"),
                "productName": product.get("productName"),
                "weight": product.get("weight"),
                "pickupCapabilities": product.get("pickupCapabilities"),
                "deliveryCapabilities": capabilities,
                "totalPrice": product.get("totalPrice"),
            },
        )

    def _shipment_payload(self, reference: str, request: UnifiedQuoteRequest) -> Dict[str, Any]:
        product_code = self._product_code(request)
        planned = datetime.now(timezone(timedelta(hours=1))).strftime("%Y-%m-%dT%H:%M:%S GMT+01:00")
        length = request.item.length or DEFAULT_DIMENSION_CM
        width = request.item.width or DEFAULT_DIMENSION_CM
        height = request.item.height or DEFAULT_DIMENSION_CM

        image_options = [
            {"templateName": "ECOM26_84_A4_001", "typeCode": "label"},
            {"templateName": "ARCH_8X4_A4_002", "isRequested": True, "typeCode": "waybillDoc", "hideAccountNumber": True},
        ]
        content: Dict[str, Any] = {
            "packages": [
                {
                    "weight": request.item.weight,
                    "dimensions": {"length": length, "width": width, "height": height},
                }
            ],
            "isCustomsDeclarable": False,
            "description": request.item.description,
            "incoterm": "DAP",
            "unitOfMeasurement": "metric",
        }

        if request.is_international:
            declared_value = request.item.value or 0
            image_options.append({
                "templateName": "COMMERCIAL_INVOICE_P_10",
                "invoiceType": "commercial",
                "languageCode": "eng",
                "isRequested": True,
                "typeCode": "invoice",
            })
            content.update({
                "isCustomsDeclarable": product_code == "P",
                "declaredValue": declared_value,
                "declaredValueCurrency": self.settings.CURRENCY,
                "exportDeclaration": {
                    "lineItems": [
                        {
                            "number": 1,
                            "quantity": {"unitOfMeasurement": "PCS", "value": 1},
                            "price": declared_value,
                            "description": request.item.description,
                            "weight": {"netValue": request.item.weight, "grossValue": request.item.weight},
                            "exportReasonType": "permanent",
                            "manufacturerCountry": request.pickup.country_code,
                        }
                    ],
                    "invoice": {"number": reference, "date": datetime.now(timezone.utc).date().isoformat()},
                    "placeOfIncoterm": request.delivery.city,
                    "exportReasonType": "permanent",
                    "shipmentType": "personal",
                },
            })

        return {
            "plannedShippingDateAndTime": planned,
            "productCode": product_code,
            "pickup": {"isRequested": False},
            "accounts": [{"number": self.account_number, "typeCode": "shipper"}],
            "outputImageProperties": {
                "allDocumentsInOneImage": True,
                "encodingFormat": "pdf",
                "imageOptions": image_options,
            },
            "customerDetails": {
                "shipperDetails": {
                    "postalAddress": {
                        "addressLine1": request.pickup.address[:45],
                        "postalCode": request.pickup.postal_code or "00000",
                        "cityName": request.pickup.city,
                        "countryCode": request.pickup.country_code,
                    },
                    "contactInformation": {
                        "fullName": request.pickup.contact_name or "Sender",
                        "companyName": self.settings.DHL_SHIPPER_COMPANY,
                        "email": self.settings.DHL_SHIPPER_EMAIL,
                        "phone": request.pickup.contact_phone,
                    },
                    "typeCode": "business",
                },
                "receiverDetails": {
                    "postalAddress": {
                        "addressLine1": (request.delivery.formatted_address or request.delivery.address)[:45],
                        "postalCode": request.delivery.postal_code or "00000",
                        "cityName": request.delivery.city,
                        "countryCode": request.delivery.country_code,
                    },
                    "contactInformation": {
                        "fullName": request.delivery.customer_name,
                        "companyName": self.settings.DHL_RECEIVER_COMPANY,
                        "email": self.settings.DHL_RECEIVER_EMAIL,
                        "phone": request.delivery.customer_phone,
                    },
                    "typeCode": "business",
                },
            },
            "content": content,
            "customerReferences": [{"value": reference, "typeCode": "CU"}],
        }

    async def create_order(self, reference: str, request: UnifiedQuoteRequest) -> ProviderOrderResponse:
        """Create a shipment with DHL Express"""
        data = await self._make_request(
            "POST",
            f"{self.base_url}/shipments",
            headers=self._get_headers(include_message_ref=True),
            data=self._shipment_payload(reference, request),
        )
        tracking = data.get("shipmentTrackingNumber")
        logger.info(f"DHL shipment created. Tracking number: {tracking or 'N/A'}")
        # Label PDFs are large; keep only the document types in the snapshot
        snapshot = {
            **{k: v for k, v in data.items() if k != "documents"},
            "documents": [{"typeCode": d.get("typeCode")} for d in data.get("documents") or []],
        }
        return ProviderOrderResponse(
            external_order_id=tracking or data.get("id"),
            tracking_ref=tracking,
            status=data.get("status") or "Created",
            raw=snapshot,
        )

    async def track_order(self, external_order_id: str) -> TrackingStatus:
        """Track a shipment by its tracking number"""
        data = await self._make_request(
            "GET",
            f"{self.base_url}/shipments/{external_order_id}/tracking",
            headers=self._get_headers(),
        )
        shipments = data.get("shipments")
        shipment = shipments[0] if isinstance(shipments, list) and shipments else shipments
        if not shipment:
            raise ProviderAPIError(f"No DHL tracking data for {external_order_id}")

        events = sorted(
            shipment.get("events") or [],
            key=lambda e: f"{e.get('date', '')}T{e.get('time', '')}",
            reverse=True,
        )
        latest = events[0] if events else {}
        return TrackingStatus(
            status=latest.get("description") or "Unknown",
            updated_at=f"{latest['date']}T{latest.get('time', '')}" if latest.get("date") else None,
            meta=data,
        )

    async def cancel_order(self, external_order_id: str) -> None:
        await self._make_request(
            "DELETE",
            f"{self.base_url}/shipments/{external_order_id}",
            headers=self._get_headers(),
        )
