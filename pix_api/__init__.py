"""
PIX billing API: charge creation and Mercado Pago payment reconciliation.
"""
