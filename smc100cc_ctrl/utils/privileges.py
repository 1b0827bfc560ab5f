"""
Effective-uid switching around privileged device access.

The daemon may be installed setuid so it can open tty devices that the
invoking user cannot. Privileges are raised only for the open call and
restored immediately afterwards.
"""

import logging
import os
from contextlib import contextmanager


logger = logging.getLogger(__name__)


@contextmanager
def elevated_privileges():
    """
    Run the enclosed block with the saved (installed) effective uid.

    No-op on platforms without setresuid semantics, or when real and
    saved uid are the same.
    """
    if not hasattr(os, "getresuid"):
        yield
        return

    real_uid, _, saved_uid = os.getresuid()
    if real_uid == saved_uid:
        yield
        return

    os.seteuid(saved_uid)
    logger.debug(f"Effective uid raised to {saved_uid}")
    try:
        yield
    finally:
        os.seteuid(real_uid)
        logger.debug(f"Effective uid restored to {real_uid}")
