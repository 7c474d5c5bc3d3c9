"""Aramex endpoint constants for both wire protocols."""

from shiplink.domain.models.transport import CALCULATE_RATE, TRACK_SHIPMENTS

# --- JSON/HTTP (ShippingAPI.V2) ---
PRODUCTION_BASE_URL = "https://ws.aramex.net/ShippingAPI.V2"
SANDBOX_BASE_URL = "https://ws.dev.aramex.net/ShippingAPI.V2"

HTTP_PATHS = {
    TRACK_SHIPMENTS: "/Tracking/Service_1_0.svc/json/TrackShipments",
    CALCULATE_RATE: "/RateCalculator/Service_1_0.svc/json/CalculateRate",
}

HTTP_CLIENT_VERSION = "v2"
HTTP_CLIENT_SOURCE = 24

# --- XML/SOAP (ShippingAPI v1) ---
SOAP_PRODUCTION_HOST = "http://ws.aramex.net"
SOAP_SANDBOX_HOST = "http://ws.dev.aramex.net"

SOAP_PATHS = {
    TRACK_SHIPMENTS: "/shippingapi/tracking/service_1_0.svc",
    CALCULATE_RATE: "/shippingapi/ratecalculator/service_1_0.svc",
}

SOAP_ACTIONS = {
    TRACK_SHIPMENTS: "http://ws.aramex.net/ShippingAPI/v1/Service_1_0/TrackShipments",
    CALCULATE_RATE: "http://ws.aramex.net/ShippingAPI/v1/Service_1_0/CalculateRate",
}

# Body element wrapping each operation's request and response.
SOAP_REQUEST_ELEMENTS = {
    TRACK_SHIPMENTS: "ShipmentTrackingRequest",
    CALCULATE_RATE: "RateCalculatorRequest",
}

SOAP_CLIENT_VERSION = "v1.0"

SOAP_ENVELOPE_NS = "http://schemas.xmlsoap.org/soap/envelope/"
ARAMEX_NS = "http://ws.aramex.net/ShippingAPI/v1/"
ARRAYS_NS = "http://schemas.microsoft.com/2003/10/Serialization/Arrays"
