"""
Summaries of evaluation results.

A program's final value is rendered into the views a user usually wants to
see side by side: the policy, its descriptor, the script executed when
spending, and the receiving address.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from .runtime.values import (
    Value, ValueKind, format_value, into_descriptor, translate_domain_errors,
)
from .. import descriptors, script as scripts


@dataclass
class Report:
    """What the CLI and ``compile_and_run`` show for a value."""
    policy: Optional[str] = None
    descriptor: Optional[str] = None
    script_asm: Optional[str] = None
    address: Optional[str] = None
    other: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def lines(self):
        """(label, text) pairs for the fields that are set."""
        labels = (
            ("policy", self.policy),
            ("descriptor", self.descriptor),
            ("script", self.script_asm),
            ("address", self.address),
            ("value", self.other),
        )
        return [(label, text) for label, text in labels if text is not None]


def _describe_descriptor(report: Report, desc: Any, network: str) -> None:
    report.descriptor = str(desc)
    if descriptors.is_wildcard(desc):
        return
    report.script_asm = scripts.disassemble(descriptors.explicit_script(desc))
    report.address = descriptors.address(desc, network)


def summarize(value: Value, network: str = "main") -> Report:
    """
    Build the report for ``value``.

    Wildcard and multipath descriptors have no single script or address, so
    only the descriptor is shown for them.

    Raises:
        EvaluationError: If the value cannot be compiled or encoded
    """
    report = Report()
    kind = value.kind

    with translate_domain_errors():
        if kind is ValueKind.POLICY:
            report.policy = str(value.data)
            _describe_descriptor(report, into_descriptor(value), network)
        elif kind is ValueKind.DESCRIPTOR:
            _describe_descriptor(report, value.data, network)
        elif kind is ValueKind.PUBKEY:
            _describe_descriptor(report, descriptors.wpkh(value.data), network)
            report.other = format_value(value)
        elif kind is ValueKind.SCRIPT:
            report.script_asm = scripts.disassemble(value.data)
            report.address = descriptors.script_address(value.data, network)
        elif kind is ValueKind.ADDRESS:
            report.address = value.data
        else:
            report.other = format_value(value)

    return report
