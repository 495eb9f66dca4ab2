from django.db import models
from django.utils.translation import gettext_lazy as _


class Branch(models.Model):
    """
    A physical store. Orders, stock, shifts and transfers are all scoped to a
    branch; branch administration itself happens elsewhere.
    """

    name = models.CharField(
        max_length=100,
        unique=True,
        help_text=_("Branch name (e.g., 'Downtown', 'Airport')"),
    )
    code = models.CharField(
        max_length=20,
        unique=True,
        help_text=_("Short code used in order and transfer references."),
    )
    address = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Branch")
        verbose_name_plural = _("Branches")
        ordering = ["name"]

    def __str__(self):
        return self.name
