"""
Outbound messaging connectors
"""
from notifier.connectors.whatsapp import (
    TwilioWhatsAppClient,
    ProviderResult,
    MessagingProviderError,
    get_whatsapp_client,
    mock_result,
)

__all__ = [
    'TwilioWhatsAppClient',
    'ProviderResult',
    'MessagingProviderError',
    'get_whatsapp_client',
    'mock_result',
]
