from django.core.exceptions import ValidationError
from django.db.models.signals import pre_delete
from django.dispatch import receiver

from .models import (Account, Invoice, JournalEntry, JournalLine, Payment,
                     PaymentAllocation)

""" Queryset .delete() bypasses Model.delete(); these receivers guard the
    ledger on every delete path. """


@receiver(pre_delete, sender=Invoice)
def prevent_delete_invoice_with_payments(sender, instance, **kwargs):
    if PaymentAllocation.objects.filter(invoice=instance).exists():
        raise ValidationError("Cannot delete invoice with applied payments.")


@receiver(pre_delete, sender=Payment)
def prevent_delete_allocated_payment(sender, instance, **kwargs):
    if PaymentAllocation.objects.filter(payment=instance).exists():
        raise ValidationError("Cannot delete a payment that has allocations.")


@receiver(pre_delete, sender=JournalEntry)
def prevent_delete_posted_journal(sender, instance, **kwargs):
    if instance.status != "draft":
        raise ValidationError("Posted journal entries cannot be deleted; reverse them.")


@receiver(pre_delete, sender=JournalLine)
def prevent_delete_posted_line(sender, instance, **kwargs):
    if JournalEntry.objects.filter(pk=instance.journal_id).exclude(status="draft").exists():
        raise ValidationError("Cannot delete lines of a posted journal.")


@receiver(pre_delete, sender=Account)
def prevent_delete_account_with_journal_lines(sender, instance, **kwargs):
    """Block deletion if account has ever been used in a journal line."""
    if JournalLine.objects.filter(account=instance).exists():
        raise ValidationError("Cannot delete account used in journal lines.")
