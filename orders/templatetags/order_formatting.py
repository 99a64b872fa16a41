"""
Template filters for order emails.
"""
from django import template

register = template.Library()


def format_rsd(value) -> str:
    """Format an amount as ``1.234.567 RSD``; negatives show as zero."""
    amount = max(0, round(value or 0))
    return f"{amount:,}".replace(',', '.') + ' RSD'


@register.filter(is_safe=True)
def rsd(value):
    return format_rsd(value)
