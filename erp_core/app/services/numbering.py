"""
Human-readable document numbers.

- Jumbo rolls:      SHZ<YY><MM><seq4>       count of the month's rolls + 1
- Child rolls:      <parent roll><letters>  A..Z, AA, AB, ...
- Sales orders:     SO-<YYYYMMDD>-<seq5>    lowest unused number of the day
- Journal entries:  JE<YYYY><MM><seq4>      last number of the month + 1

The read and the later insert are not one atomic step. Unique constraints on
the number columns turn a collision into an IntegrityError at flush time;
order creation retries on that, the others report it.
"""

from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import Stock, Order
from ..finance_models import JournalEntry

ROLL_PREFIX = "SHZ"
ORDER_PREFIX = "SO"
ENTRY_PREFIX = "JE"


def generate_roll_no(db: Session, now: Optional[datetime] = None) -> str:
    # Not gap-aware: after a deletion the next number can repeat an existing one.
    now = now or datetime.utcnow()
    prefix = f"{ROLL_PREFIX}{now:%y%m}"
    count = db.query(func.count(Stock.id)).filter(Stock.roll_no.like(f"{prefix}%")).scalar() or 0
    return f"{prefix}{count + 1:04d}"


def generate_order_no(db: Session, now: Optional[datetime] = None) -> str:
    """Fill the first gap in the day's five-digit sequence, starting at 1."""
    now = now or datetime.utcnow()
    prefix = f"{ORDER_PREFIX}-{now:%Y%m%d}"

    used = set()
    for (order_no,) in db.query(Order.order_no).filter(Order.order_no.like(f"{prefix}-%")):
        suffix = order_no[len(prefix) + 1:]
        if len(suffix) == 5 and suffix.isdigit():
            used.add(int(suffix))

    seq = 1
    while seq in used:
        seq += 1
    return f"{prefix}-{seq:05d}"


def generate_entry_no(db: Session, now: Optional[datetime] = None) -> str:
    now = now or datetime.utcnow()
    prefix = f"{ENTRY_PREFIX}{now:%Y%m}"
    last = db.query(JournalEntry.entry_no).filter(
        JournalEntry.entry_no.like(f"{prefix}%")
    ).order_by(JournalEntry.entry_no.desc()).first()

    seq = 1
    if last:
        suffix = last[0][len(prefix):]
        if suffix.isdigit():
            seq = int(suffix) + 1
    return f"{prefix}{seq:04d}"


def roll_suffix(index: int) -> str:
    """0 -> A, 25 -> Z, 26 -> AA, 27 -> AB."""
    letters = ""
    index += 1
    while index > 0:
        index, rem = divmod(index - 1, 26)
        letters = chr(65 + rem) + letters
    return letters


def next_roll_suffixes(taken: Iterable[str], count: int) -> List[str]:
    """First `count` suffixes in A, B, ... order that are not already taken."""
    taken = set(taken)
    suffixes = []
    index = 0
    while len(suffixes) < count:
        suffix = roll_suffix(index)
        if suffix not in taken:
            suffixes.append(suffix)
        index += 1
    return suffixes
