from Bio.Seq import translate


class Clonotype:
    __slots__ = 'id', 'cells', 'freq'

    def __init__(self,
                 id: int | str = -1,
                 cells: int = 1,
                 freq: float = None):
        """
        The initializing method for the clonotype class.
        :param id: the clonotype id (row index in the source table)
        :param cells: number of reads (cells) with the clonotype
        :param freq: the frequency of the clonotype in its sample; can be None if it should be evaluated from counts
        """
        self.id = id
        self.cells = cells
        self.freq = freq

    def size(self) -> int:
        return self.cells

    def __str__(self):
        return 'κ' + str(self.id)

    def __repr__(self):
        return self.__str__()


class ClonotypeAA(Clonotype):
    """
    The clonotype which stores the amino acid CDR3 sequence and V(D)J gene calls. The sequence is the key \
    the clonotype is identified by within a sample.
    """
    __slots__ = 'cdr3aa', 'v', 'd', 'j'

    def __init__(self, cdr3aa: str,
                 v: str = None,
                 d: str = None,
                 j: str = None,
                 id: int | str = -1,
                 cells: int = 1,
                 freq: float = None):
        """
        :param cdr3aa: the string with cdr3aa
        :param v: V gene name or None
        :param d: D gene name or None
        :param j: J gene name or None
        """
        super().__init__(id, cells, freq)
        self.cdr3aa = cdr3aa
        self.v = v
        self.d = d
        self.j = j

    @property
    def vj(self) -> tuple[str, str]:
        """
        the V/J gene pair used for gene-usage grouping
        """
        return self.v, self.j

    def serialize(self) -> dict:
        return {'count': self.cells,
                'freq': self.freq,
                'cdr3nt': None,
                'cdr3aa': self.cdr3aa,
                'v': self.v,
                'd': self.d,
                'j': self.j}

    def __str__(self):
        return super().__str__() + ' ' + self.cdr3aa

    def __repr__(self):
        return self.__str__()

    def __copy__(self):
        return ClonotypeAA(self.cdr3aa, self.v, self.d, self.j, self.id, self.cells, self.freq)


class ClonotypeNT(ClonotypeAA):
    """
    The clonotype which stores the nucleotide sequence along with the amino acid one. If the amino acid sequence \
    is not given it is translated from `cdr3nt`.
    """
    __slots__ = 'cdr3nt',

    def __init__(self,
                 cdr3nt: str,
                 cdr3aa: str = None,
                 v: str = None,
                 d: str = None,
                 j: str = None,
                 id: int | str = -1,
                 cells: int = 1,
                 freq: float = None):
        if not cdr3aa:
            cdr3aa = translate(cdr3nt[:len(cdr3nt) - len(cdr3nt) % 3])
        super().__init__(cdr3aa, v, d, j, id, cells, freq)
        self.cdr3nt = cdr3nt

    def serialize(self) -> dict:
        res = super().serialize()
        res['cdr3nt'] = self.cdr3nt
        return res

    def __str__(self):
        return super().__str__() + ' ' + self.cdr3nt

    def __repr__(self):
        return self.__str__()

    def __copy__(self):
        return ClonotypeNT(self.cdr3nt, self.cdr3aa, self.v, self.d, self.j, self.id, self.cells, self.freq)
