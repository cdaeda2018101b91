"""
GroupLedger package.

This package keeps shared-expense groups, their members and their users'
running totals consistent, and renews recurring expenses.
"""

from .config import *
from .dates import *
from .errors import *
from .interval import *
from .models import *
