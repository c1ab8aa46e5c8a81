from messaging_gateway.support.phone import PhoneFormatter

__all__ = ["PhoneFormatter"]
