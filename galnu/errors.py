"""Exception types and sentinel values shared by the analysis modules."""


class InvalidParameter(ValueError):
    """An input lies outside the domain of the operation it was passed to,
    eg. an angle outside its range, a negative concentration,
    a non-positive grid dimension or a mixing fraction outside [0, 1]."""


# returned in place of a lower confidence bound when the likelihood
# peaks at f_gal = 0, so that it can never be mistaken for a real f_gal
NO_LOWER_BOUND = -1.0
