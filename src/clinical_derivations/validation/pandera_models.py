from __future__ import annotations

from typing import Optional

import pandas as pd
import pandera as pa
from pandera.typing import Series


class CTSpecModel(pa.DataFrameModel):
    codelist_code: Series[str] = pa.Field(coerce=True)
    term_code: Series[str] = pa.Field(nullable=True, coerce=True)
    term_value: Series[str] = pa.Field(coerce=True)
    collected_value: Series[str] = pa.Field(nullable=True, coerce=True)
    term_preferred_term: Series[str] = pa.Field(nullable=True, coerce=True)
    term_synonyms: Series[str] = pa.Field(nullable=True, coerce=True)

    class Config:
        strict = False


class DSDomainModel(pa.DataFrameModel):
    STUDYID: Series[str] = pa.Field(nullable=True)
    DOMAIN: Series[str] = pa.Field(isin=["DS"])
    USUBJID: Series[str] = pa.Field(nullable=True)
    DSSEQ: Series[int] = pa.Field(ge=1)
    DSTERM: Series[str] = pa.Field(nullable=True)
    DSDECOD: Series[str] = pa.Field(nullable=True)
    DSCAT: Series[str] = pa.Field(
        nullable=True, isin=["PROTOCOL MILESTONE", "DISPOSITION EVENT", "OTHER EVENT"]
    )
    VISITNUM: Series[float] = pa.Field(nullable=True)
    VISIT: Series[str] = pa.Field(nullable=True)
    DSDTC: Series[str] = pa.Field(nullable=True)
    DSSTDTC: Series[str] = pa.Field(nullable=True)
    DSSTDY: Series[pd.Int64Dtype] = pa.Field(nullable=True)

    class Config:
        strict = True
        ordered = True

    @pa.dataframe_check
    def seq_unique_within_subject(cls, df: pd.DataFrame) -> bool:
        return not df.duplicated(subset=["USUBJID", "DSSEQ"]).any()


class ADSLModel(pa.DataFrameModel):
    STUDYID: Series[str]
    USUBJID: Series[str] = pa.Field(unique=True)
    AGEGR9: Series[str] = pa.Field(nullable=True, isin=["<18", "18-64", ">50", "Missing"])
    AGEGR9N: Series[float] = pa.Field(nullable=True, isin=[1, 2, 3])
    TRTSDTM: Series[pd.Timestamp] = pa.Field(nullable=True, coerce=True)
    TRTSTMF: Series[str] = pa.Field(nullable=True, isin=["H", "M", "S"])
    ITTFL: Series[str] = pa.Field(isin=["Y", "N"])
    TRTEDTM: Series[pd.Timestamp] = pa.Field(nullable=True, coerce=True)
    LSTALVDT: Series[pd.Timestamp] = pa.Field(nullable=True, coerce=True)
    LALVSRC: Optional[Series[str]] = pa.Field(nullable=True, isin=["VS", "AE", "DS", "ADSL"])

    class Config:
        strict = False


class ADAEModel(pa.DataFrameModel):
    USUBJID: Series[str]
    ACTARM: Series[str] = pa.Field(nullable=True)
    AESOC: Series[str] = pa.Field(nullable=True)
    AEDECOD: Series[str] = pa.Field(nullable=True)
    AESEV: Series[str] = pa.Field(nullable=True)
    TRTEMFL: Series[str] = pa.Field(nullable=True)

    class Config:
        strict = False
