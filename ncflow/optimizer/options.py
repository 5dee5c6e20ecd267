"""
Optimization options

OptimizationOptions is an immutable value of generic flags plus at most one
dialect block (Fanuc or Heidenhain). OptionsBuilder is the single place
where a value is put together and checked against the target controller;
presets are ready-made values of the same shape.
"""

from dataclasses import dataclass, fields, replace
from enum import Enum

from ncflow.utils.errors import OptionsError, UnknownControllerError


class Controller(str, Enum):
    FANUC = "fanuc"
    HEIDENHAIN = "heidenhain"
    SIEMENS = "siemens"
    HAAS = "haas"
    MAZAK = "mazak"
    OKUMA = "okuma"
    GENERIC = "generic"

    @classmethod
    def parse(cls, value: "str | Controller") -> "Controller":
        if isinstance(value, Controller):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            accepted = ", ".join(c.value for c in cls)
            raise UnknownControllerError(f"{value!r} (accepted: {accepted})") from None

    @property
    def file_extension(self) -> str:
        return ".h" if self is Controller.HEIDENHAIN else ".nc"


@dataclass(frozen=True)
class FanucOptions:
    use_decimal_format: bool = True
    use_modal_g_codes: bool = True
    use_ai: bool = False
    use_nano_smoothing: bool = False
    use_corner_rounding: bool = False
    use_high_precision_mode: bool = False
    use_compact_gcode: bool = True


@dataclass(frozen=True)
class HeidenhainOptions:
    use_conversational_format: bool = True
    use_function_blocks: bool = True
    use_cycle_define: bool = True
    use_tcp: bool = False


@dataclass(frozen=True)
class Envelope:
    """Axis-aligned travel limits checked by safety validation."""

    minimum: tuple[float, float, float]
    maximum: tuple[float, float, float]

    def __post_init__(self):
        if any(lo >= hi for lo, hi in zip(self.minimum, self.maximum)):
            raise OptionsError(f"envelope minimum {self.minimum} must be below maximum {self.maximum}")

    def contains(self, point) -> bool:
        return all(lo <= v <= hi for v, lo, hi in zip(point, self.minimum, self.maximum))


@dataclass(frozen=True)
class OptimizationOptions:
    remove_empty_lines: bool = True
    remove_comments: bool = False
    remove_redundant_moves: bool = True
    remove_redundant_codes: bool = True
    optimize_rapid_moves: bool = True
    consolidate_gcodes: bool = True
    optimize_feedrates: bool = True
    use_arc_optimization: bool = True
    use_high_speed_mode: bool = False
    safety_checks: bool = True
    fanuc: FanucOptions | None = None
    heidenhain: HeidenhainOptions | None = None
    envelope: Envelope | None = None
    program_name: str = "WORKPIECE"

    def check_for(self, controller: Controller) -> None:
        """Raise OptionsError when a dialect block does not match ``controller``."""
        if self.fanuc is not None and controller is not Controller.FANUC:
            raise OptionsError(f"Fanuc options set while targeting {controller.value}")
        if self.heidenhain is not None and controller is not Controller.HEIDENHAIN:
            raise OptionsError(f"Heidenhain options set while targeting {controller.value}")
        if not self.program_name.strip() or " " in self.program_name.strip():
            raise OptionsError(f"program name {self.program_name!r} must be a single non-empty word")


_GENERIC_FLAGS = frozenset(
    f.name for f in fields(OptimizationOptions) if f.name not in ("fanuc", "heidenhain", "envelope", "program_name")
)


def _flag_names(cls) -> frozenset[str]:
    return frozenset(f.name for f in fields(cls))


class OptionsBuilder:
    """
    Validating builder for OptimizationOptions.

    Example:
        options = OptionsBuilder("fanuc").preset("speed").set(remove_comments=False).build()
    """

    def __init__(self, controller: "str | Controller"):
        self.controller = Controller.parse(controller)
        self._generic: dict = {}
        self._fanuc: dict | None = {} if self.controller is Controller.FANUC else None
        self._heidenhain: dict | None = {} if self.controller is Controller.HEIDENHAIN else None
        self._envelope: Envelope | None = None
        self._program_name: str | None = None

    def preset(self, name: str) -> "OptionsBuilder":
        """Start from a named preset; later calls override its flags."""
        try:
            template = PRESETS[name]
        except KeyError:
            raise OptionsError(f"unknown preset {name!r} (known: {', '.join(PRESETS)})") from None
        self._generic = {flag: getattr(template, flag) for flag in _GENERIC_FLAGS}
        if self._fanuc is not None and template.fanuc is not None:
            self._fanuc = {f.name: getattr(template.fanuc, f.name) for f in fields(FanucOptions)}
        if self._heidenhain is not None and template.heidenhain is not None:
            self._heidenhain = {f.name: getattr(template.heidenhain, f.name) for f in fields(HeidenhainOptions)}
        return self

    def set(self, **flags: bool) -> "OptionsBuilder":
        unknown = set(flags) - _GENERIC_FLAGS
        if unknown:
            raise OptionsError(f"unknown option(s): {', '.join(sorted(unknown))}")
        self._generic.update(flags)
        return self

    def fanuc(self, **flags: bool) -> "OptionsBuilder":
        if self._fanuc is None:
            raise OptionsError(f"Fanuc options cannot be used while targeting {self.controller.value}")
        unknown = set(flags) - _flag_names(FanucOptions)
        if unknown:
            raise OptionsError(f"unknown Fanuc option(s): {', '.join(sorted(unknown))}")
        self._fanuc.update(flags)
        return self

    def heidenhain(self, **flags: bool) -> "OptionsBuilder":
        if self._heidenhain is None:
            raise OptionsError(f"Heidenhain options cannot be used while targeting {self.controller.value}")
        unknown = set(flags) - _flag_names(HeidenhainOptions)
        if unknown:
            raise OptionsError(f"unknown Heidenhain option(s): {', '.join(sorted(unknown))}")
        self._heidenhain.update(flags)
        return self

    def envelope(self, minimum, maximum) -> "OptionsBuilder":
        self._envelope = Envelope(tuple(map(float, minimum)), tuple(map(float, maximum)))
        return self

    def program_name(self, name: str) -> "OptionsBuilder":
        self._program_name = name
        return self

    def build(self) -> OptimizationOptions:
        options = OptimizationOptions(
            **self._generic,
            fanuc=FanucOptions(**self._fanuc) if self._fanuc is not None else None,
            heidenhain=HeidenhainOptions(**self._heidenhain) if self._heidenhain is not None else None,
            envelope=self._envelope,
        )
        if self._program_name is not None:
            options = replace(options, program_name=self._program_name)
        options.check_for(self.controller)
        return options


def default_options(controller: "str | Controller") -> OptimizationOptions:
    return OptionsBuilder(controller).build()


def preset_options(name: str, controller: "str | Controller") -> OptimizationOptions:
    return OptionsBuilder(controller).preset(name).build()


PRESETS: dict[str, OptimizationOptions] = {
    "basic": OptimizationOptions(
        fanuc=FanucOptions(),
        heidenhain=HeidenhainOptions(use_function_blocks=False),
    ),
    "speed": OptimizationOptions(
        remove_comments=True,
        use_high_speed_mode=True,
        fanuc=FanucOptions(use_ai=True, use_nano_smoothing=True, use_corner_rounding=True),
        heidenhain=HeidenhainOptions(use_tcp=True),
    ),
    "quality": OptimizationOptions(
        fanuc=FanucOptions(use_high_precision_mode=True, use_compact_gcode=False),
        heidenhain=HeidenhainOptions(use_tcp=True),
    ),
    "advanced": OptimizationOptions(
        use_high_speed_mode=True,
        fanuc=FanucOptions(
            use_ai=True,
            use_nano_smoothing=True,
            use_corner_rounding=True,
            use_high_precision_mode=True,
        ),
        heidenhain=HeidenhainOptions(use_tcp=True),
    ),
}
