from messaging_gateway.gateways.afriksms import AfrikSmsGateway
from messaging_gateway.gateways.base import Gateway, OtpSender, SmsGateway, WhatsAppGateway
from messaging_gateway.gateways.twilio_whatsapp import TwilioWhatsAppGateway, map_twilio_error

__all__ = [
    "AfrikSmsGateway",
    "Gateway",
    "OtpSender",
    "SmsGateway",
    "TwilioWhatsAppGateway",
    "WhatsAppGateway",
    "map_twilio_error",
]
