"""Public account schema."""

from app.models.account import AccountBase


class AccountResponse(AccountBase):
    """
    Account as returned by the API.

    Inherits the public fields from AccountBase; the password hash and
    soft-delete timestamp live only on the table model.
    """

    id: str

    model_config = {"from_attributes": True}
