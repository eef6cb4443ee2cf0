"""
Mock integration clients.

These clients return fake (but realistic) responses without calling any external API.
They are used when:
- M-PESA credentials are not configured (development mode)
- We want to exercise initiation and callbacks end-to-end without Safaricom

Important:
- Mock clients must follow the SAME interface as real HTTP clients
  (src/integrations/contracts/interfaces.PaymentGateway).
"""
