import logging
from typing import List

from ..entities import Certificate, ChainBundle
from ..errors import ParseError
from .pem import BEGIN_CERT, END_CERT, Text, normalize, parse_certificate

log = logging.getLogger(__name__)


def assemble_chain(text: Text) -> ChainBundle:
    """Parse every certificate of a concatenated PEM bundle, keeping source order.

    Fragments that do not parse are dropped; a bundle with nothing usable
    yields an empty tuple.
    """
    certs: List[Certificate] = []
    for i, fragment in enumerate(normalize(text).split(END_CERT)):
        if not fragment.strip():
            continue
        start = fragment.rfind(BEGIN_CERT)
        if start > 0:
            fragment = fragment[start:]
        try:
            certs.append(parse_certificate(fragment + END_CERT))
        except ParseError:
            log.debug("skipping unparseable bundle fragment #%d", i)
    return tuple(certs)
