"""
Column names and label vocabularies for the perinatal dataset.
"""

from typing import Dict, List

TARGET = 'low_birth_weight'

# Source extract uses upper-case abbreviated names
RAW_COLUMN_MAP: Dict[str, str] = {
    'ABAIXOPESO': TARGET,
    'PIDADE': 'paternal_age',
    'MIDADE': 'maternal_age',
    'PEDUC': 'paternal_schooling',
    'MEDUC': 'maternal_schooling',
    'NUMGRAVTOTAL': 'total_pregnancies',
    'PRENATAL': 'prenatal_start_month',
    'NASCMORTO': 'prior_stillbirths',
    'ABORTOS': 'prior_abortions',
    'ULTNASC': 'last_birth_outcome',
    'ANOSMORTEFETAL': 'years_since_fetal_death',
    'ANOSNASCVIDA': 'years_since_live_birth',
    'ESTCIVIL': 'marital_status',
    'FILHOSVIVOS': 'living_children',
    'CIGARROSDIA': 'cigarettes_per_day',
    'ALCOOLDIA': 'alcohol_per_week',
    'BEBE': 'drinks',
    'FUMA': 'smokes',
    'ANEMIA': 'anemia',
    'DOENCACARDIACA': 'cardiac_disease',
    'DOENCAPULMONAR': 'pulmonary_disease',
    'DIABETES': 'diabetes',
    'HERPES': 'herpes',
    'HYDRAMNIOS': 'hydramnios',
    'HEMOGLOB': 'hemoglobinopathy',
    'HIPERCRO': 'chronic_hypertension',
    'HIPER': 'pregnancy_hypertension',
    'ECLAMPSIA': 'eclampsia',
    'COLOUTINCO': 'incompetent_cervix',
    'REMEDIOINFANTIL': 'risk_medication',
    'PREMATURO': 'prior_preterm_birth',
    'DOENCARENAL': 'renal_disease',
    'RHSENSIVEL': 'rh_sensitization',
    'SANGRAUTERINO': 'uterine_bleeding',
    'AMNIO': 'amniocentesis',
    'ULTRA': 'ultrasound',
}

SOURCE_COLUMNS: List[str] = list(RAW_COLUMN_MAP.values())

DROPPED_COLUMNS = [
    'paternal_age',
    'paternal_schooling',
    'years_since_fetal_death',
    'years_since_live_birth',
]

# KPI1 weights
ORGANIC_FLAGS: Dict[str, int] = {
    'anemia': 1,
    'cardiac_disease': 1,
    'pulmonary_disease': 1,
    'diabetes': 2,
    'herpes': 1,
    'hydramnios': 1,
    'hemoglobinopathy': 1,
    'renal_disease': 2,
    'rh_sensitization': 1,
}

# KPI2 weights
GESTATIONAL_FLAGS: Dict[str, int] = {
    'chronic_hypertension': 1,
    'pregnancy_hypertension': 1,
    'eclampsia': 2,
    'incompetent_cervix': 1,
    'risk_medication': 1,
    'prior_preterm_birth': 1,
    'uterine_bleeding': 1,
}

# Tier labels
LOW_RISK = 'low'
MODERATE_RISK = 'moderate'
HIGH_RISK = 'high'
RISK_TIERS = [LOW_RISK, MODERATE_RISK, HIGH_RISK]

KPI_COLUMNS: Dict[str, str] = {
    'kpi1_organic': 'kpi1_organic_tier',
    'kpi2_gestational': 'kpi2_gestational_tier',
    'kpi3_behavioral': 'kpi3_behavioral_tier',
    'kpi4_prenatal': 'kpi4_prenatal_tier',
}

MODELING_COLUMNS: List[str] = [
    TARGET,
    'maternal_age',
    'prior_abortions',
    'living_children_cat',
    'kpi1_organic_tier',
    'kpi2_gestational_tier',
    'kpi3_behavioral_tier',
    'kpi4_prenatal_tier',
]

NUMERIC_PREDICTORS = ['maternal_age', 'prior_abortions']
CATEGORICAL_PREDICTORS = [c for c in MODELING_COLUMNS if c.endswith(('_cat', '_tier'))]


def canonicalize_columns(columns) -> Dict[str, str]:
    """Return a rename map turning source column names into canonical ones."""
    return {col: RAW_COLUMN_MAP[col] for col in columns if col in RAW_COLUMN_MAP}
