import enum


class DosingRegime(enum.Enum):
    """
    Mutually exclusive ways a dose can be delivered within one dosing cycle.

    BOLUS: the whole amount enters the dosing compartment instantaneously.
    TRUNCATED_INFUSION: the amount is infused at a constant rate for
        amt / rate time units, followed by a rate-free remainder of the interval.
    CONSTANT_INFUSION: a never-ending infusion with no dosing interval.
    """
    BOLUS = "bolus"
    TRUNCATED_INFUSION = "truncated_infusion"
    CONSTANT_INFUSION = "constant_infusion"


def classify_regime(rate: float, ii: float) -> DosingRegime:
    """
    Select the dosing regime from plain data.

    Exact comparisons are intentional: the same branch must be taken no matter
    which parameters are being differentiated, so no tolerance is applied.

    Args:
        rate (float): Infusion rate into the dosing compartment.
        ii (float): Interdose interval; ii <= 0 means no periodicity.
    """
    if rate == 0:
        return DosingRegime.BOLUS
    if ii > 0:
        return DosingRegime.TRUNCATED_INFUSION
    return DosingRegime.CONSTANT_INFUSION
