from tortoise import fields
from tortoise.models import Model


class Ban(Model):
    """Ban list entry stored in the database so it outlives the process."""

    id = fields.IntField(pk=True)
    # ip | key | keyword
    kind = fields.CharField(max_length=16, index=True)
    value = fields.CharField(max_length=255)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "bans"
        unique_together = (("kind", "value"),)
