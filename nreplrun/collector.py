"""Remote result collector for background test runs.

``cljs.test/run-tests`` returns before the tests finish, so results cannot be
read from the call that starts them.  The collector replaces the default
``:fail``/``:error``/``:summary`` report methods with ones that append each
failure to a list kept on ``js/globalThis`` and, when the summary arrives,
write ``{:test :pass :fail :error :failures}`` into a result slot next to it.
The client then peeks at that slot until something appears.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from . import edn

LOGGER = logging.getLogger("nreplrun.collector")

_INSTALL_TEMPLATE = """(do
  (require '[cljs.test :as t])
  (when-not (aget js/globalThis "{slot}")
    (aset js/globalThis "{slot}" (atom nil)))
  (when-not (aget js/globalThis "{failures}")
    (aset js/globalThis "{failures}" (atom [])))
  (reset! (aget js/globalThis "{slot}") nil)
  (reset! (aget js/globalThis "{failures}") [])
  (t/set-env! (t/empty-env))
  (doseq [k [:fail :error :summary]]
    (when (contains? (methods t/report) [:cljs.test/default k])
      (remove-method t/report [:cljs.test/default k])))
  (letfn [(record! [kind m]
            (swap! (aget js/globalThis "{failures}") conj
                   {{:type kind
                    :testing-contexts (:testing-contexts m)
                    :testing-vars (str (:testing-vars m))
                    :message (:message m)
                    :expected (:expected m)
                    :actual (:actual m)}}))]
    (defmethod t/report [:cljs.test/default :fail] [m] (record! :fail m))
    (defmethod t/report [:cljs.test/default :error] [m] (record! :error m)))
  (defmethod t/report [:cljs.test/default :summary] [m]
    (let [failures @(aget js/globalThis "{failures}")]
      (reset! (aget js/globalThis "{slot}")
              (assoc (select-keys m [:test :pass])
                     :fail (count (filter #(= :fail (:type %)) failures))
                     :error (count (filter #(= :error (:type %)) failures))
                     :failures failures))))
  :ok)"""

_PEEK_TEMPLATE = """(when-let [a (aget js/globalThis "{slot}")]
  (some-> @a pr-str))"""


def _decode(raw: str) -> Any:
    """Read a polled value, unwrapping a second layer of printing if present.

    The peek expression returns ``(pr-str result)``, which nREPL prints again,
    so the value usually arrives as a string literal holding the real map.
    When the inner text does not read, the first-pass value is kept.
    """
    first = edn.loads(raw)
    if not isinstance(first, str):
        return first
    try:
        return edn.loads(first)
    except edn.EdnError as exc:
        LOGGER.debug("second read failed: %s", exc)
        return first


@dataclass(frozen=True)
class ResultCollector:
    """Names and code for the remote result slot and failure list."""

    slot: str = "__NREPLRUN_RESULT__"
    failures: str = "__NREPLRUN_FAILURES__"

    def install_code(self) -> str:
        return _INSTALL_TEMPLATE.format(slot=self.slot, failures=self.failures)

    def peek_code(self) -> str:
        return _PEEK_TEMPLATE.format(slot=self.slot)

    def decode(self, raw: Optional[str]) -> Any:
        """Decode a peeked value; ``None`` means the slot is still empty."""
        if raw is None or raw.strip() in ("", "nil"):
            return None
        value = _decode(raw)
        if isinstance(value, str) and not value.strip():
            return None
        return value
