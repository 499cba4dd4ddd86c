"""
Pydantic models for classification and reclassification configuration.

These models turn the survey-derived lookup tables of the scoring
configuration into validated objects:

- ClassBreakTable: contiguous numeric intervals -> integer class codes.
- ReclassRule: integer class codes -> numeric estimates or weights.
"""

from typing import Optional, Sequence

from pydantic import BaseModel, Field, field_validator, model_validator


class ClassInterval(BaseModel):
    """A right-open numeric interval [lower, upper) mapped to a class code."""

    lower: float = Field(..., description="Inclusive lower bound")
    upper: float = Field(..., description="Exclusive upper bound")
    code: int = Field(..., description="Class code assigned to values in the interval")
    label: str = Field(default="", description="Human-readable class label")

    @field_validator("upper")
    @classmethod
    def validate_bounds(cls, v: float, info) -> float:
        """Ensure upper is not below lower."""
        if "lower" in info.data and v < info.data["lower"]:
            raise ValueError("upper must not be less than lower")
        return v


class ClassBreakTable(BaseModel):
    """
    Ordered, gap-free partition of a numeric domain into classes.

    Intervals are right-open. When ``closed_top`` is set the last interval
    also includes its upper bound, which is how data-driven breaks keep
    the maximum value inside the top class.
    """

    intervals: list[ClassInterval] = Field(
        ...,
        min_length=1,
        description="Intervals in ascending order",
    )
    closed_top: bool = Field(
        default=False,
        description="Include the upper bound of the last interval",
    )

    @model_validator(mode="after")
    def validate_partition(self) -> "ClassBreakTable":
        """Ensure intervals are ordered, contiguous and uniquely coded."""
        last_index = len(self.intervals) - 1

        for index, interval in enumerate(self.intervals):
            degenerate_ok = index == last_index and self.closed_top
            if interval.upper == interval.lower and not degenerate_ok:
                raise ValueError(
                    f"Interval [{interval.lower}, {interval.upper}) is empty"
                )

        for previous, current in zip(self.intervals, self.intervals[1:]):
            if current.lower < previous.upper:
                raise ValueError(
                    f"Intervals overlap at {current.lower} (previous upper bound {previous.upper})"
                )
            if current.lower > previous.upper:
                raise ValueError(
                    f"Gap between {previous.upper} and {current.lower}"
                )

        codes = [interval.code for interval in self.intervals]
        if len(set(codes)) != len(codes):
            raise ValueError(f"Duplicate class codes in {codes}")

        return self

    @property
    def codes(self) -> list[int]:
        return [interval.code for interval in self.intervals]

    @property
    def lower_bounds(self) -> list[float]:
        return [interval.lower for interval in self.intervals]

    @property
    def upper_bounds(self) -> list[float]:
        return [interval.upper for interval in self.intervals]

    def classify(self, value: float) -> Optional[int]:
        """
        Classify a single value.

        Args:
            value: Value to classify.

        Returns:
            Class code of the containing interval, or None if outside all intervals.
        """
        last = self.intervals[-1]
        for interval in self.intervals:
            if interval.lower <= value < interval.upper:
                return interval.code

        if self.closed_top and value == last.upper:
            return last.code
        return None

    def label_for(self, code: int) -> str:
        for interval in self.intervals:
            if interval.code == code:
                return interval.label
        return ""

    @classmethod
    def from_breaks(
        cls,
        breaks: Sequence[float],
        codes: Optional[Sequence[int]] = None,
        labels: Optional[Sequence[str]] = None,
        closed_top: bool = True,
    ) -> "ClassBreakTable":
        """
        Build a table from ascending boundaries.

        ``n`` boundaries produce ``n - 1`` intervals. A single boundary
        produces one degenerate interval, which requires ``closed_top``.

        Args:
            breaks: Ascending boundaries including the domain minimum and maximum.
            codes: Class codes per interval. Defaults to 1..K.
            labels: Labels per interval. Defaults to "lower - upper".
            closed_top: Include the maximum in the top interval.

        Returns:
            ClassBreakTable instance.
        """
        bounds = [float(b) for b in breaks]
        if not bounds:
            raise ValueError("At least one boundary is required")
        if len(bounds) == 1:
            bounds = [bounds[0], bounds[0]]

        count = len(bounds) - 1
        codes = list(codes) if codes is not None else list(range(1, count + 1))
        if len(codes) != count:
            raise ValueError(f"Expected {count} codes, got {len(codes)}")
        if labels is not None and len(labels) != count:
            raise ValueError(f"Expected {count} labels, got {len(labels)}")

        intervals = []
        for index in range(count):
            lower, upper = bounds[index], bounds[index + 1]
            label = labels[index] if labels is not None else f"{lower:g} - {upper:g}"
            intervals.append(
                ClassInterval(lower=lower, upper=upper, code=codes[index], label=label)
            )

        return cls(intervals=intervals, closed_top=closed_top)


class ReclassRule(BaseModel):
    """
    Lookup table from integer class codes to replacement values.

    Replacement values are either absolute estimates (population class ->
    representative headcount) or relative weights (demographic class ->
    suitability weight).
    """

    attribute: str = Field(default="", description="Attribute the rule applies to")
    mapping: dict[int, float] = Field(
        ...,
        min_length=1,
        description="Class code -> replacement value",
    )
    description: Optional[str] = Field(default=None, description="Free-text description")

    @model_validator(mode="before")
    @classmethod
    def expand_ranges(cls, data):
        """
        Expand ``ranges`` rows of [from, to, value] into explicit mappings.

        Both ends of a range are inclusive, so [4, 5, 0] maps classes 4
        and 5 to 0. Explicit ``mapping`` entries take precedence.
        """
        if not isinstance(data, dict) or "ranges" not in data:
            return data

        data = dict(data)
        mapping: dict[int, float] = {}
        for row in data.pop("ranges") or []:
            if len(row) != 3:
                raise ValueError(f"Range rows need [from, to, value], got {row}")
            start, stop, value = int(row[0]), int(row[1]), float(row[2])
            if stop < start:
                raise ValueError(f"Range {row} ends before it starts")
            for code in range(start, stop + 1):
                mapping[code] = value

        mapping.update(data.get("mapping") or {})
        data["mapping"] = mapping
        return data

    @property
    def codes(self) -> list[int]:
        return sorted(self.mapping)

    def is_invertible(self) -> bool:
        values = list(self.mapping.values())
        return len(set(values)) == len(values) and all(
            float(v).is_integer() for v in values
        )

    def inverse(self) -> "ReclassRule":
        """
        Build the reverse lookup of an injective rule.

        Returns:
            ReclassRule mapping each replacement value back to its code.

        Raises:
            ValueError: If two codes share a value or a value is not integral.
        """
        if not self.is_invertible():
            raise ValueError(
                f"Rule for '{self.attribute}' is not invertible: {self.mapping}"
            )
        return ReclassRule(
            attribute=self.attribute,
            mapping={int(value): float(code) for code, value in self.mapping.items()},
            description=f"Inverse of {self.attribute or 'rule'}",
        )
