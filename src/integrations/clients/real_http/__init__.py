"""
Real HTTP integration clients.

These clients communicate with the Safaricom Daraja API:
- OAuth token exchange
- STK push (Lipa Na M-PESA Online)

Important:
- Must implement the same interface as the mock clients
- Must return data shaped according to src/integrations/contracts/*
"""
