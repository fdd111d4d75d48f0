"""Locate the next unscraped serial number next to the persisted ones.

Both directions are point-in-time reads. A serial returned here can be claimed
by a concurrent scrape before the caller acts on it; the orchestrator's
get-or-create absorbs that race.
"""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import Select, Table, select

from failcat.data_models import SerialNumber


def gap_above_stmt(cars: Table, lower_bound: SerialNumber) -> Select:
    here = cars.alias("here")
    succ = cars.alias("succ")
    return (
        select((here.c.serial_number + 1).label("serial_number"))
        .select_from(here.outerjoin(succ, succ.c.serial_number == here.c.serial_number + 1))
        .where(succ.c.id.is_(None))
        .where(here.c.serial_number >= lower_bound)
        .order_by(here.c.serial_number.asc())
        .limit(1)
    )


def gap_below_stmt(cars: Table, upper_bound: SerialNumber) -> Select:
    here = cars.alias("here")
    pred = cars.alias("pred")
    return (
        select((here.c.serial_number - 1).label("serial_number"))
        .select_from(here.outerjoin(pred, pred.c.serial_number == here.c.serial_number - 1))
        .where(pred.c.id.is_(None))
        .where(here.c.serial_number <= upper_bound)
        .where(here.c.serial_number > 0)
        .order_by(here.c.serial_number.desc())
        .limit(1)
    )


def gap_above(serials: Iterable[SerialNumber], lower_bound: SerialNumber) -> SerialNumber | None:
    known = set(serials)
    for serial in sorted(s for s in known if s >= lower_bound):
        if serial + 1 not in known:
            return serial + 1
    return None


def gap_below(serials: Iterable[SerialNumber], upper_bound: SerialNumber) -> SerialNumber | None:
    """Mirror of :func:`gap_above`: the largest persisted ``S <= upper_bound``
    whose predecessor is missing yields ``S - 1``.

    Only holes adjacent to a persisted serial count, so ``{1, 2, 3, 5, 6}``
    gives 4 for an upper bound of 10, not 9.
    """
    known = set(serials)
    for serial in sorted((s for s in known if 0 < s <= upper_bound), reverse=True):
        if serial - 1 not in known:
            return serial - 1
    return None
