"""
Static registry of benchmark tests.

A test is looked up once, before the device is touched, by its canonical name
or one of its aliases (case-insensitive).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable

from tssbench.errors import ConfigurationError

if TYPE_CHECKING:
    from tssbench.device import DeviceSession

TestFunction = Callable[["DeviceSession"], bool]


@dataclass(frozen=True)
class TestCase:
    """A named test function."""

    name: str
    function: TestFunction
    aliases: tuple[str, ...] = ()

    @property
    def all_names(self) -> tuple[str, ...]:
        """Canonical name followed by the aliases."""
        return (self.name, *self.aliases)

    def __call__(self, session: DeviceSession) -> bool:
        return self.function(session)


class TestRegistry:
    """Maps test names and aliases to test cases."""

    def __init__(self, cases: Iterable[TestCase] = ()):
        self._cases: list[TestCase] = []
        self._by_name: dict[str, TestCase] = {}
        for case in cases:
            self.register(case)

    def register(self, case: TestCase) -> None:
        """Add a test case.

        Raises:
            ValueError: if any of its names is already taken.
        """
        keys = [name.lower() for name in case.all_names]
        if len(set(keys)) != len(keys):
            raise ValueError(f"test '{case.name}' repeats one of its own names")
        for key in keys:
            if key in self._by_name:
                raise ValueError(
                    f"test name '{key}' of '{case.name}' is already registered "
                    f"by '{self._by_name[key].name}'"
                )
        self._cases.append(case)
        for key in keys:
            self._by_name[key] = case

    def names(self) -> list[str]:
        """Canonical names in registration order."""
        return [case.name for case in self._cases]

    def resolve(self, name: str) -> TestCase:
        """Find the test case registered under ``name``.

        Raises:
            ConfigurationError: if no test carries that name.
        """
        case = self._by_name.get(name.lower())
        if case is None:
            raise ConfigurationError(
                f"unrecognized test name: '{name}'. "
                f"supported tests: {', '.join(self.names())}"
            )
        return case


def default_registry() -> TestRegistry:
    """Registry holding the four TPM workloads."""
    # Deferred import: the workloads need tpm2-pytss
    from tssbench import workloads

    return TestRegistry(
        [
            TestCase("seal_unseal", workloads.run_seal_unseal, ("seal",)),
            TestCase("pcr_extend", workloads.run_pcr_extend, ("pcr",)),
            TestCase("rsa_2048_create_sign_verify", workloads.run_rsa_2048, ("rsa",)),
            TestCase("ecc_p256_create_sign_verify", workloads.run_ecc_p256, ("ecc",)),
        ]
    )
