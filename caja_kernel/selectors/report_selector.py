"""
Module: caja_kernel.selectors.report_selector
Responsibility: Dashboard aggregates over posted movements: window totals,
    per-day inflow/outflow evolution and the largest outflow labels.
Architecture position: Kernel > Selectors.

Movements are bucketed by their drawer's date, which is the GMT-3 calendar
day the movement was posted to.  Grouping therefore never depends on the
database's timezone functions.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select

from caja_kernel.db.types import ZERO, round_money
from caja_kernel.domain.dtos import DailyTotals, Dashboard, LabelTotal, MovementKind
from caja_kernel.exceptions import InvalidDateRangeError
from caja_kernel.models.drawer import Drawer, Movement
from caja_kernel.selectors.base import BaseSelector

TOP_OUTFLOW_LIMIT = 5


class ReportSelector(BaseSelector[Movement]):
    """Read-only reporting queries."""

    def dashboard(
        self,
        start_date: date,
        end_date: date,
        top: int = TOP_OUTFLOW_LIMIT,
    ) -> Dashboard:
        """
        Aggregate movements of drawers dated ``start_date``..``end_date``.

        Raises:
            InvalidDateRangeError: ``end_date`` precedes ``start_date``.
        """
        if end_date < start_date:
            raise InvalidDateRangeError(start_date, end_date)

        in_window = (Drawer.drawer_date >= start_date, Drawer.drawer_date <= end_date)

        rows = self.session.execute(
            select(Drawer.drawer_date, Movement.kind, func.sum(Movement.amount))
            .select_from(Movement)
            .join(Drawer, Movement.drawer_id == Drawer.id)
            .where(*in_window)
            .group_by(Drawer.drawer_date, Movement.kind)
        ).all()

        per_day: dict[date, dict[str, Decimal]] = defaultdict(
            lambda: {MovementKind.INFLOW.value: ZERO, MovementKind.OUTFLOW.value: ZERO}
        )
        for day, kind, amount in rows:
            per_day[day][MovementKind(kind).value] += round_money(amount or ZERO)

        daily = tuple(
            DailyTotals(
                day=day,
                total_inflow=totals[MovementKind.INFLOW.value],
                total_outflow=totals[MovementKind.OUTFLOW.value],
            )
            for day, totals in sorted(per_day.items())
        )
        total_inflow = round_money(sum((d.total_inflow for d in daily), ZERO))
        total_outflow = round_money(sum((d.total_outflow for d in daily), ZERO))

        label_total = func.sum(Movement.amount)
        top_rows = self.session.execute(
            select(Movement.label, label_total)
            .select_from(Movement)
            .join(Drawer, Movement.drawer_id == Drawer.id)
            .where(*in_window, Movement.kind == MovementKind.OUTFLOW.value)
            .group_by(Movement.label)
            .order_by(label_total.desc(), Movement.label)
            .limit(top)
        ).all()

        return Dashboard(
            start_date=start_date,
            end_date=end_date,
            total_inflow=total_inflow,
            total_outflow=total_outflow,
            balance=total_inflow - total_outflow,
            daily=daily,
            top_outflows=tuple(
                LabelTotal(label=label, total=round_money(amount)) for label, amount in top_rows
            ),
        )
