"""
State enums for billing models.

This module defines all state enums used by billing models with django-fsm.
These are Django TextChoices for database storage and admin integration.
Stored values are the Portuguese codes used by the back office.

State Machines Overview:

Invoice States:
    pendente → parcialmente_recebido → recebido
    recebido/parcialmente_recebido → pendente (receipt reversal)
    pendente → cancelado

Payable States:
    pendente → parcialmente_pago → pago
    pago/parcialmente_pago → pendente (payment reversal)
    pendente → cancelado

BankTransaction States:
    pendente → conciliado → pendente (reconciliation reversal)
    pendente → ignorado
"""

from django.db import models


class InvoiceStatus(models.TextChoices):
    """
    States for the Invoice lifecycle.

    Status is derived from total_received vs net_value and recomputed on
    every receipt insert or reversal.

    Terminal state: CANCELADO
    """

    PENDENTE = "pendente", "Pendente"
    PARCIALMENTE_RECEBIDO = "parcialmente_recebido", "Parcialmente recebido"
    RECEBIDO = "recebido", "Recebido"
    CANCELADO = "cancelado", "Cancelado"


class PayableStatus(models.TextChoices):
    """
    States for the Payable (accounts payable) lifecycle.

    Status is derived from the remaining balance and recomputed on every
    payment insert or reversal.

    State Flow:
        PENDENTE → PARCIALMENTE_PAGO → PAGO
        PAGO → PARCIALMENTE_PAGO / PENDENTE (reversal)
        PENDENTE → CANCELADO

    Terminal state: CANCELADO (PAGO is left only by reversal)
    """

    PENDENTE = "pendente", "Pendente"
    PARCIALMENTE_PAGO = "parcialmente_pago", "Parcialmente pago"
    PAGO = "pago", "Pago"
    CANCELADO = "cancelado", "Cancelado"


class BankTransactionStatus(models.TextChoices):
    """Reconciliation status of an imported bank transaction."""

    PENDENTE = "pendente", "Pendente"
    CONCILIADO = "conciliado", "Conciliado"
    IGNORADO = "ignorado", "Ignorado"


class TransactionType(models.TextChoices):
    """Direction of a bank statement movement."""

    CREDIT = "credit", "Credit"
    DEBIT = "debit", "Debit"


class ReconciledWithType(models.TextChoices):
    """Kind of record a reconciled bank transaction points at."""

    PAYABLE = "payable", "Payable"
    INVOICE = "invoice", "Invoice"


class ObligationKind(models.TextChoices):
    """Kind of open obligation offered as a match candidate."""

    PAYABLE = "payable", "Payable"
    ALLOCATION = "allocation", "Allocation"


class RevenueType(models.TextChoices):
    """
    Types of revenue entries.

    ESTORNO_PAGAMENTO is the counter-entry created when a payment to a
    doctor is reversed and the money flows back to the bank account.
    """

    ESTORNO_PAGAMENTO = "estorno_pagamento", "Estorno de pagamento"
    OUTRAS = "outras", "Outras receitas"


class AdjustmentType(models.TextChoices):
    """Side of a receipt/payment adjustment."""

    RECEBIMENTO = "recebimento", "Recebimento"
    PAGAMENTO = "pagamento", "Pagamento"
