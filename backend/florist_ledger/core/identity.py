"""Operator identity supplied by the upstream identity provider.

Authentication happens in front of this service; the gateway forwards the
authenticated operator's stable id and email as request headers. The ledger
only needs those to attribute stock history entries.
"""

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status

OPERATOR_ID_HEADER = "X-Operator-Id"
OPERATOR_EMAIL_HEADER = "X-Operator-Email"


class Operator:
    """Identity of the actor performing a stock or order operation.

    Attributes:
        operator_id: Stable identifier from the identity provider.
        email: Operator email, preferred for ledger attribution.
        branch_name: Branch the operator belongs to, when known.
    """

    def __init__(self, operator_id: str, email: str = "", branch_name: Optional[str] = None):
        self.operator_id = operator_id
        self.email = email
        self.branch_name = branch_name

    @property
    def ledger_name(self) -> str:
        """Name written into the ``operator`` column of history entries."""
        return self.email or self.operator_id or "Unknown User"

    def __repr__(self) -> str:
        return f"Operator({self.ledger_name!r})"


def get_current_operator(request: Request) -> Operator:
    """Resolve the operator from forwarded identity headers."""
    operator_id = request.headers.get(OPERATOR_ID_HEADER, "").strip()
    email = request.headers.get(OPERATOR_EMAIL_HEADER, "").strip()

    if not operator_id and not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Operator identity required",
        )

    return Operator(
        operator_id=operator_id or email,
        email=email,
        branch_name=request.headers.get("X-Operator-Branch") or None,
    )


CurrentOperator = Annotated[Operator, Depends(get_current_operator)]
