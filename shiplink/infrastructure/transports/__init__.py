"""Provider transports.

One Transport implementation per wire protocol of the Aramex API:
JSON over HTTP and XML over SOAP.
Bounded Context: Provider Integration
"""
