"""
Z80 命令マッピング定義。
各命令モジュールから関数をインポートし、オペコードと関数の対応表を構築します。
"""
from .alu import (
    execute_adc_sbc_hl_ss, execute_add_hl_ss, execute_alu_n, execute_alu_r, execute_ccf, execute_cpl,
    execute_daa, execute_inc_dec8, execute_inc_dec16, execute_neg, execute_rld_rrd, execute_rotate_a, execute_scf
)
from .control import (
    execute_call_cc_nn, execute_call_nn, execute_di, execute_djnz, execute_ei, execute_halt, execute_im,
    execute_in_a_n, execute_in_r_c, execute_jp_cc_nn, execute_jp_hl, execute_jp_nn, execute_jr_cc_e, execute_jr_e,
    execute_nop, execute_out_c_r, execute_out_n_a, execute_ret, execute_ret_cc, execute_reti_retn, execute_rst
)
from .load import (
    execute_block_cp, execute_block_ld, execute_ex_af_af, execute_ex_de_hl, execute_ex_sp_hl, execute_exx,
    execute_ld_a_i_r, execute_ld_a_indirect, execute_ld_a_nn, execute_ld_hl_nn_indirect, execute_ld_i_a,
    execute_ld_indirect_a, execute_ld_nn_a, execute_ld_nn_hl, execute_ld_nn_rr, execute_ld_r_a, execute_ld_r_n,
    execute_ld_r_r, execute_ld_rr_nn_indirect, execute_ld_sp_hl, execute_ld_ss_nn, execute_pop, execute_push
)

# 0xCB, 0xDD, 0xED, 0xFD はプレフィックスとして実行器が直接処理します。
MAIN_MAP = {
    0x00: execute_nop,
    0x02: execute_ld_indirect_a,
    0x08: execute_ex_af_af,
    0x0A: execute_ld_a_indirect,
    0x10: execute_djnz,
    0x12: execute_ld_indirect_a,
    0x18: execute_jr_e,
    0x1A: execute_ld_a_indirect,
    0x22: execute_ld_nn_hl,
    0x27: execute_daa,
    0x2A: execute_ld_hl_nn_indirect,
    0x2F: execute_cpl,
    0x32: execute_ld_nn_a,
    0x37: execute_scf,
    0x3A: execute_ld_a_nn,
    0x3F: execute_ccf,
    0x76: execute_halt,
    0xC3: execute_jp_nn,
    0xC9: execute_ret,
    0xCD: execute_call_nn,
    0xD3: execute_out_n_a,
    0xD9: execute_exx,
    0xDB: execute_in_a_n,
    0xE3: execute_ex_sp_hl,
    0xE9: execute_jp_hl,
    0xEB: execute_ex_de_hl,
    0xF3: execute_di,
    0xF9: execute_ld_sp_hl,
    0xFB: execute_ei,
    **{op: execute_ld_ss_nn for op in range(0x01, 0x40, 0x10)},    # LD BC/DE/HL/SP,nn
    **{op: execute_inc_dec16 for op in range(0x03, 0x40, 0x08)},   # INC ss / DEC ss
    **{op: execute_inc_dec8 for op in range(0x04, 0x40, 0x08)},    # INC r
    **{op: execute_inc_dec8 for op in range(0x05, 0x40, 0x08)},    # DEC r
    **{op: execute_ld_r_n for op in range(0x06, 0x40, 0x08)},      # LD r,n
    **{op: execute_rotate_a for op in range(0x07, 0x20, 0x08)},    # RLCA, RRCA, RLA, RRA
    **{op: execute_add_hl_ss for op in range(0x09, 0x40, 0x10)},   # ADD HL,ss
    **{op: execute_jr_cc_e for op in range(0x20, 0x40, 0x08)},     # JR cc,e
    **{op: execute_ld_r_r for op in range(0x40, 0x80) if op != 0x76},
    **{op: execute_alu_r for op in range(0x80, 0xC0)},             # ADD..CP r
    **{op: execute_ret_cc for op in range(0xC0, 0x100, 0x08)},     # RET cc
    **{op: execute_pop for op in range(0xC1, 0x100, 0x10)},        # POP qq
    **{op: execute_jp_cc_nn for op in range(0xC2, 0x100, 0x08)},   # JP cc,nn
    **{op: execute_call_cc_nn for op in range(0xC4, 0x100, 0x08)}, # CALL cc,nn
    **{op: execute_push for op in range(0xC5, 0x100, 0x10)},       # PUSH qq
    **{op: execute_alu_n for op in range(0xC6, 0x100, 0x08)},      # ADD..CP n
    **{op: execute_rst for op in range(0xC7, 0x100, 0x08)},        # RST p
}

ED_MAP = {
    0x47: execute_ld_i_a,
    0x4F: execute_ld_r_a,
    0x57: execute_ld_a_i_r,
    0x5F: execute_ld_a_i_r,
    0x67: execute_rld_rrd,
    0x6F: execute_rld_rrd,
    **{op: execute_in_r_c for op in range(0x40, 0x80, 0x08)},
    **{op: execute_out_c_r for op in range(0x41, 0x80, 0x08)},
    **{op: execute_adc_sbc_hl_ss for op in range(0x42, 0x80, 0x08)},   # SBC HL,ss / ADC HL,ss
    **{op: execute_ld_nn_rr for op in range(0x43, 0x80, 0x10)},
    **{op: execute_ld_rr_nn_indirect for op in range(0x4B, 0x80, 0x10)},
    **{op: execute_neg for op in range(0x44, 0x80, 0x08)},
    **{op: execute_reti_retn for op in range(0x45, 0x80, 0x08)},       # RETN（0x4DはRETI）
    **{op: execute_im for op in range(0x46, 0x80, 0x08)},
    **{op: execute_block_ld for op in (0xA0, 0xA8, 0xB0, 0xB8)},       # LDI, LDD, LDIR, LDDR
    **{op: execute_block_cp for op in (0xA1, 0xA9, 0xB1, 0xB9)},       # CPI, CPD, CPIR, CPDR
}

# DD/FDプレフィックスの後に続いたとき、HL/H/L/(HL) が IX/IY に置き換わる命令
INDEXABLE_OPCODES = frozenset(
    [0x09, 0x19, 0x29, 0x39, 0x21, 0x22, 0x23, 0x2A, 0x2B]
    + [0x24, 0x25, 0x26, 0x2C, 0x2D, 0x2E, 0x34, 0x35, 0x36]
    + [op for op in range(0x40, 0x80) if op != 0x76 and ((op >> 3) & 7 in (4, 5, 6) or op & 7 in (4, 5, 6))]
    + [op for op in range(0x80, 0xC0) if op & 7 in (4, 5, 6)]
    + [0xCB, 0xE1, 0xE3, 0xE5, 0xE9, 0xF9]
)
