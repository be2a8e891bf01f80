from collections import namedtuple

import pandas as pd

AnnotationRule = namedtuple('AnnotationRule', 'sample_id allele_prefix label')


class AnnotationRuleTable:
    """
    A declarative post-hoc filter for annotated tables. A row is kept if at least one rule matches it: \
    the rule sample is the row sample (or `*`), the row V gene starts with the rule allele prefix and the row \
    label is the required one.
    """
    def __init__(self, rules: list[AnnotationRule]):
        self.rules = [AnnotationRule(*x) for x in rules]

    @classmethod
    def load_from_df(cls, df: pd.DataFrame):
        """
        creates the rule table from a `sample_id, allele_prefix, label` table
        """
        missing = [x for x in AnnotationRule._fields if x not in df.columns]
        if missing:
            raise ValueError(f'Columns {missing} missing in rule table')
        return cls([AnnotationRule(row['sample_id'], row['allele_prefix'], row['label'])
                    for _, row in df.iterrows()])

    def matches(self, sample_id: str, v: str, label: str) -> bool:
        if v is None or pd.isna(v) or label is None or pd.isna(label):
            return False
        return any(rule.sample_id in ('*', sample_id) and v.startswith(rule.allele_prefix) and label == rule.label
                   for rule in self.rules)

    def apply(self, df: pd.DataFrame, sample_column='sample_id', v_column='v', label_column='label') -> pd.DataFrame:
        """
        :param df: a table with sample, V gene and label columns (e.g. degree stats merged with annotations)
        :return: the rows passing the rules
        """
        mask = [self.matches(s, v, label) for s, v, label in zip(df[sample_column], df[v_column], df[label_column])]
        return df[pd.Series(mask, index=df.index, dtype=bool)]
