"""
Chart selection and compositing.

An export selects the charts whose coverage touches the query box, then folds
them most-detailed-first into one dataset, shrinking the still-unserved region
after each chart.
"""
