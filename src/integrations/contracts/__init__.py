"""
Contracts (data models).

This folder defines the shapes exchanged with the M-PESA gateway and stored
on transactions:
- validated initiation requests and STK push results
- parsed STK callbacks
- the typed audit log kept in a transaction's metadata

Both the Daraja client and the development-mode mock return these contracts.
"""
