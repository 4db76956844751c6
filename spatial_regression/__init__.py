"""
Spatial regression walkthrough: geostatistical malaria-prevalence models.

Modules:
    config             – shared constants (column names, CV defaults, paths)
    errors             – data / partition / fit / selection errors
    data               – dataset loading and record validation
    model_spec         – structured model specification (outcome, spatial term, covariates)
    covariance         – Matérn / exponential / Gaussian covariance functions
    fitting            – binomial GLM and spatial (Matérn random effect) fitters
    folds              – k-fold partition of record indices
    cross_validation   – cross-validated MSE scorer, model comparison
    backward_selection – CV-guided backward covariate elimination
    spatial_analysis   – Moran's I and residual correlogram
    semivariogram      – empirical semivariogram with fitted Matérn model
    run_all            – orchestrator: applied malaria mapping exercise
"""
