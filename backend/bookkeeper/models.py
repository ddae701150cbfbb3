"""Import every model module so ``Base.metadata`` knows about all tables."""

import bookkeeper.auth.models  # noqa: F401
import bookkeeper.organizations.models  # noqa: F401
import bookkeeper.journal.models  # noqa: F401
import bookkeeper.accounting.period_models  # noqa: F401
