"""
Unit tests for the sale lifecycle state machine.
"""

import pytest

from costbook_kernel.domain.sale_workflow import (
    SALE_WORKFLOW,
    STOCK_AVAILABLE,
    is_deletable,
    is_editable,
    require_transition,
)
from costbook_kernel.exceptions import InvalidSaleTransitionError


class TestTransitions:

    @pytest.mark.parametrize(
        "from_state,to_state,action,stock_effect",
        [
            ("Draft", "Completed", "complete", -1),
            ("Completed", "Draft", "revert", 1),
            ("Completed", "Cancelled", "revert", 1),
            ("Draft", "Cancelled", "cancel", 0),
        ],
    )
    def test_declared_edges(self, from_state, to_state, action, stock_effect):
        transition = require_transition("s1", from_state, to_state)
        assert transition.action == action
        assert transition.stock_effect == stock_effect

    @pytest.mark.parametrize(
        "from_state,to_state",
        [
            ("Cancelled", "Draft"),
            ("Cancelled", "Completed"),
            ("Completed", "Completed"),
            ("Draft", "Draft"),
        ],
    )
    def test_undeclared_edges_raise(self, from_state, to_state):
        with pytest.raises(InvalidSaleTransitionError) as exc_info:
            require_transition("s1", from_state, to_state)
        assert exc_info.value.from_status == from_state
        assert exc_info.value.to_status == to_state

    def test_completion_is_guarded_by_stock(self):
        assert SALE_WORKFLOW.find("Draft", "Completed").guard is STOCK_AVAILABLE

    def test_cancelled_has_no_outgoing_edge(self):
        assert not any(t.from_state == "Cancelled" for t in SALE_WORKFLOW.transitions)


class TestPermissions:

    def test_only_drafts_are_editable(self):
        assert is_editable("Draft")
        assert not is_editable("Completed")
        assert not is_editable("Cancelled")

    def test_completed_sales_cannot_be_deleted(self):
        assert is_deletable("Draft")
        assert is_deletable("Cancelled")
        assert not is_deletable("Completed")
